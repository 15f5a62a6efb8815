"""Broker session management.

``ConnectionManager`` owns the single paho client. It probes the broker before
connecting, falls back from TLS to plain once, lets paho's loop thread handle
auto-reconnect, and runs a periodic network check that starts a fresh session
when the broker comes back after being unreachable.
"""

from __future__ import annotations

import logging
import socket
import ssl
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import paho.mqtt.client as mqtt

from .config import BridgeConfig

LOGGER = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 5.0
KEEPALIVE_SECONDS = 60
CONNECT_TIMEOUT_SECONDS = 15.0
RECONNECT_MIN_DELAY_SECONDS = 15
RECONNECT_MAX_DELAY_SECONDS = 120
MAX_RETRY_ATTEMPTS = 1


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ConnectError(RuntimeError):
    """The broker was reachable but the MQTT session could not be established."""


class BrokerUnreachableError(ConnectError):
    """The broker did not accept a TCP connection; no MQTT connect was attempted."""


@dataclass(frozen=True)
class RetryContext:
    attempts: int = 0
    ssl_allowed: bool = True

    def can_downgrade(self) -> bool:
        return self.ssl_allowed and self.attempts < MAX_RETRY_ATTEMPTS

    def downgrade(self) -> RetryContext:
        return RetryContext(attempts=self.attempts + 1, ssl_allowed=False)


def is_reachable(host: str, port: int, timeout: float = PROBE_TIMEOUT_SECONDS) -> bool:
    """Open and close a TCP connection to ``host:port``."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def _is_mqtt_success(reason_code: Any) -> bool:
    if hasattr(reason_code, "is_failure"):
        return not reason_code.is_failure
    try:
        return int(reason_code) == 0
    except (TypeError, ValueError):
        return False


class ConnectionManager:
    def __init__(
        self,
        config: BridgeConfig,
        client_factory: Callable[..., mqtt.Client] = mqtt.Client,
        probe: Callable[[str, int, float], bool] = is_reachable,
    ) -> None:
        self.config = config
        self._client_factory = client_factory
        self._probe = probe
        self._client: mqtt.Client | None = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = threading.Lock()
        self._closing = False
        self._last_reachable: bool | None = None
        self._last_connected = False
        self._reconnect_thread: threading.Thread | None = None
        self.on_connected: Callable[[], None] | None = None
        self.on_message: Callable[[str, str], None] | None = None

    @property
    def availability_topic(self) -> str:
        return f"{self.config.topic_prefix}/status/alive"

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        with self._lock:
            previous = self._state
            self._state = state
        if previous is not state:
            LOGGER.debug("[mqtt] Connection state %s -> %s", previous.value, state.value)

    # ------------------------------------------------------------------
    # Session setup

    def _build_client(self, use_tls: bool) -> mqtt.Client:
        mqtt_config = self.config.mqtt
        callback_kwargs: dict[str, object] = {}
        if hasattr(mqtt, "CallbackAPIVersion"):
            callback_kwargs["callback_api_version"] = mqtt.CallbackAPIVersion.VERSION2
        client = self._client_factory(
            client_id=f"{self.config.hostname}_host2mqtt",
            clean_session=False,
            **callback_kwargs,
        )
        if mqtt_config.username:
            client.username_pw_set(mqtt_config.username, mqtt_config.password or "")
        if use_tls:
            tls_kwargs: dict[str, object] = {}
            if mqtt_config.ca_cert:
                tls_kwargs["ca_certs"] = mqtt_config.ca_cert
            if mqtt_config.cert:
                tls_kwargs["certfile"] = mqtt_config.cert
            if mqtt_config.key:
                tls_kwargs["keyfile"] = mqtt_config.key
            tls_kwargs["tls_version"] = getattr(ssl, "PROTOCOL_TLS_CLIENT", ssl.PROTOCOL_TLS)
            client.tls_set(**tls_kwargs)
        client.will_set(self.availability_topic, payload="offline", qos=1, retain=True)
        client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY_SECONDS, max_delay=RECONNECT_MAX_DELAY_SECONDS)
        client.connect_timeout = CONNECT_TIMEOUT_SECONDS
        client.on_connect = self._handle_connect
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message
        return client

    def connect(self) -> mqtt.Client:
        """Establish a new broker session and start its network loop.

        Raises:
            BrokerUnreachableError: The TCP probe failed.
            ConnectError: The MQTT connect failed, after at most one plain-text retry
                when TLS was requested.
        """
        host, port = self.config.mqtt.host, self.config.mqtt.port
        self._closing = False
        reachable = self._probe(host, port, PROBE_TIMEOUT_SECONDS)
        self._last_reachable = reachable
        if not reachable:
            self._set_state(ConnectionState.DISCONNECTED)
            raise BrokerUnreachableError(f"broker {host}:{port} is not reachable")

        retry = RetryContext(ssl_allowed=self.config.mqtt.tls_enabled)
        while True:
            self._set_state(ConnectionState.CONNECTING)
            LOGGER.info("[mqtt] Connecting to %s:%s (tls=%s)", host, port, retry.ssl_allowed)
            try:
                client = self._build_client(use_tls=retry.ssl_allowed)
                client.connect(host, port, keepalive=KEEPALIVE_SECONDS)
            except (OSError, ValueError) as exc:
                if retry.can_downgrade():
                    LOGGER.warning("[mqtt] TLS connect failed (%s); retrying without TLS", exc)
                    retry = retry.downgrade()
                    continue
                self._set_state(ConnectionState.DISCONNECTED)
                raise ConnectError(f"failed to connect to {host}:{port}: {exc}") from exc
            break

        with self._lock:
            self._client = client
        client.loop_start()
        return client

    def disconnect(self) -> None:
        self._closing = True
        with self._lock:
            client = self._client
            self._client = None
        if client:
            client.disconnect()
            client.loop_stop()
        self._set_state(ConnectionState.DISCONNECTED)

    def _teardown(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client is None:
            return
        client.on_disconnect = None
        try:
            client.loop_stop()
            client.disconnect()
        except (OSError, RuntimeError) as exc:
            LOGGER.debug("[mqtt] Ignoring error while discarding old session: %s", exc)

    # ------------------------------------------------------------------
    # paho callbacks

    def _handle_connect(self, client, _userdata, _flags, reason_code, properties=None):  # type: ignore[no-untyped-def]
        if not _is_mqtt_success(reason_code):
            LOGGER.warning("[mqtt] Broker refused connection (reason=%s, properties=%s)", reason_code, properties)
            self._set_state(ConnectionState.RECONNECTING)
            return
        LOGGER.info("[mqtt] Connected (reason=%s)", reason_code)
        self._set_state(ConnectionState.CONNECTED)
        self._last_connected = True
        hook = self.on_connected
        if hook is None:
            return
        try:
            hook()
        except Exception:
            LOGGER.exception("[mqtt] On-connect handler failed")

    def _handle_disconnect(self, _client, _userdata, _flags, reason_code, _properties=None):  # type: ignore[no-untyped-def]
        if self._closing:
            self._set_state(ConnectionState.DISCONNECTED)
            LOGGER.info("[mqtt] Disconnected")
            return
        self._set_state(ConnectionState.RECONNECTING)
        reachable = self._probe(self.config.mqtt.host, self.config.mqtt.port, PROBE_TIMEOUT_SECONDS)
        LOGGER.warning(
            "[mqtt] Connection lost (reason=%s); broker %s; automatic reconnect pending",
            reason_code,
            "still reachable" if reachable else "unreachable from this network",
        )

    def _handle_message(self, _client, _userdata, message):  # type: ignore[no-untyped-def]
        handler = self.on_message
        if handler is None:
            return
        payload = message.payload.decode("utf-8", errors="ignore")
        try:
            handler(message.topic, payload)
        except Exception:
            LOGGER.exception("[mqtt] Message handler failed for topic '%s'", message.topic)

    # ------------------------------------------------------------------
    # Publishing

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> bool:
        client = self._client
        if client is None or not self.is_connected():
            return False
        try:
            result = client.publish(topic, payload=payload, qos=qos, retain=retain)
        except (ValueError, RuntimeError) as exc:
            LOGGER.warning("[mqtt] Failed to publish to %s: %s", topic, exc)
            return False
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            LOGGER.debug("[mqtt] Publish to %s returned rc=%s", topic, result.rc)
            return False
        return True

    def subscribe(self, topic: str, qos: int = 1) -> bool:
        client = self._client
        if client is None:
            return False
        result, _mid = client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            LOGGER.warning("[mqtt] Failed to subscribe to topic: %s (rc=%s)", topic, result)
            return False
        return True

    # ------------------------------------------------------------------
    # Network monitoring

    def check_network(self) -> bool:
        """Probe the broker and reconnect when it returns after an outage.

        Returns:
            Whether the broker is currently reachable.
        """
        reachable = self._probe(self.config.mqtt.host, self.config.mqtt.port, PROBE_TIMEOUT_SECONDS)
        previous = self._last_reachable
        self._last_reachable = reachable
        if previous is not None and reachable != previous:
            if reachable:
                LOGGER.info("[mqtt] Broker %s is reachable again", self.config.mqtt.host)
            else:
                LOGGER.warning("[mqtt] Broker %s is no longer reachable", self.config.mqtt.host)

        connected = self.is_connected()
        if connected != self._last_connected:
            LOGGER.info("[mqtt] Session %s", "up" if connected else "down")
            self._last_connected = connected

        if reachable and not connected and (previous is False or self._client is None):
            self._start_reconnect()
        return reachable

    def _start_reconnect(self) -> bool:
        with self._lock:
            if self._reconnect_thread and self._reconnect_thread.is_alive():
                return False
            thread = threading.Thread(target=self._reconnect, name="mqtt-reconnect", daemon=True)
            self._reconnect_thread = thread
        thread.start()
        return True

    def _reconnect(self) -> None:
        LOGGER.info("[mqtt] Starting a fresh session")
        self._teardown()
        try:
            self.connect()
        except ConnectError as exc:
            LOGGER.warning("[mqtt] Reconnect failed: %s", exc)
