"""Application wiring and process entry point."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from .activity import ActivityDebouncer
from .audio import AudioController
from .config import DEFAULT_ENV_FILE, BridgeConfig, ConfigError, load_config
from .connection import BrokerUnreachableError, ConnectError, ConnectionManager
from .display import Display, DisplayController
from .lmstudio import LMStudioClient
from .media import MediaController
from .media_stream import MediaStreamReconciler
from .metrics import MetricsCollector
from .mqtt_discovery import build_device_definition
from .publisher import StatusPublisher
from .router import CommandRouter
from .scheduler import Scheduler
from .state import StateStore
from .system import DeviceIdentity, SystemController

LOGGER = logging.getLogger(__name__)


class Bridge:
    def __init__(
        self,
        config: BridgeConfig,
        connection: ConnectionManager | None = None,
        store: StateStore | None = None,
        audio: AudioController | None = None,
        displays: DisplayController | None = None,
        system: SystemController | None = None,
        media: MediaController | None = None,
        metrics: MetricsCollector | None = None,
        lmstudio: LMStudioClient | None = None,
        thread_factory: Callable[..., threading.Thread] = threading.Thread,
    ) -> None:
        self.config = config
        self.connection = connection or ConnectionManager(config)
        self.store = store or StateStore()
        self.audio = audio or AudioController()
        self.displays = displays or DisplayController()
        self.system = system or SystemController()
        self.media = media or MediaController()
        self.metrics = metrics or MetricsCollector(config.public_ip_url)
        if lmstudio is None and config.lmstudio.enabled:
            lmstudio = LMStudioClient(config.lmstudio.api_url)
        self.lmstudio = lmstudio
        self._identity: DeviceIdentity | None = None
        self._thread_factory = thread_factory
        self._setup_lock = threading.Lock()
        self._setup_thread: threading.Thread | None = None
        self._setup_pending = False

        self.publisher = StatusPublisher(
            config,
            self.connection,
            self.store,
            self.audio,
            self.displays,
            self.system,
            self.media,
            self.metrics,
            self.lmstudio,
        )
        self.router = CommandRouter(
            config,
            self.store,
            self.publisher,
            self.audio,
            self.displays,
            self.system,
            self.media,
            self.lmstudio,
        )
        self.media_stream = MediaStreamReconciler(
            self.store,
            self.publisher,
            self.media.stream_command(),
            self.connection.is_connected,
        )
        self.activity = ActivityDebouncer(
            self.store,
            self.publisher,
            self.metrics.idle_seconds,
            self.connection.is_connected,
            config.idle_activity_seconds,
        )
        self.scheduler = Scheduler(self.connection.is_connected)
        intervals = config.intervals
        self.scheduler.add("status", intervals.status, self.publisher.publish_status_group)
        self.scheduler.add("metrics", intervals.metrics, self.publisher.publish_metrics_group)
        self.scheduler.add("power", intervals.power, self.publisher.publish_power_group)
        self.scheduler.add("network", intervals.network, self.connection.check_network, requires_connection=False)

        self.connection.on_connected = self.handle_connected
        self.connection.on_message = self.router.route

    @property
    def command_filter(self) -> str:
        return f"{self.config.topic_prefix}/command/#"

    @property
    def discovery_topic(self) -> str:
        return f"{self.config.discovery_prefix}/device/{self.config.hostname}/config"

    def identity(self) -> DeviceIdentity:
        if self._identity is None:
            self._identity = self.system.identity(self.config.hostname)
        return self._identity

    def build_discovery(self) -> dict:
        self.publisher.refresh_displays()
        names = self.store.displays()
        lmstudio_available = self.lmstudio is not None and self.lmstudio.cli_available()
        return build_device_definition(
            self.config.hostname,
            self.config.topic_prefix,
            self.identity(),
            displays=[Display(display_id=key, name=name) for key, name in sorted(names.items())],
            media_available=self.media.available(),
            lmstudio_available=lmstudio_available,
        )

    def handle_connected(self) -> None:
        """Start session setup on a worker thread, off the paho network loop.

        A connect that arrives while a setup is still running queues exactly one
        more pass.
        """
        with self._setup_lock:
            if self._setup_thread is not None and self._setup_thread.is_alive():
                self._setup_pending = True
                return
            self._setup_thread = self._thread_factory(target=self._run_setup, name="session-setup", daemon=True)
            self._setup_thread.start()

    def _run_setup(self) -> None:
        while True:
            try:
                self.setup_session()
            except Exception:
                LOGGER.exception("[bridge] Session setup failed")
            with self._setup_lock:
                if not self._setup_pending:
                    return
                self._setup_pending = False

    def setup_session(self) -> None:
        """Bring a new or resumed session fully up to date."""
        document = self.build_discovery()
        self.connection.publish(self.discovery_topic, json.dumps(document), qos=1, retain=True)
        self.publisher.publish_alive("online")
        self.connection.subscribe(self.command_filter)
        if self.media.available():
            self.media_stream.start()
        self.activity.start()
        self.publisher.publish_all()
        LOGGER.info("[bridge] Session ready; listening on %s", self.command_filter)

    def start(self) -> None:
        self.scheduler.start()
        try:
            self.connection.connect()
        except BrokerUnreachableError as exc:
            LOGGER.warning("[bridge] %s; running offline until the broker is reachable", exc)
        except ConnectError as exc:
            LOGGER.warning("[bridge] %s; running offline and retrying from the network check", exc)

    def stop(self) -> None:
        self.scheduler.stop()
        self.activity.stop()
        self.media_stream.stop()
        if self.connection.is_connected():
            self.publisher.publish_alive("offline")
        self.connection.disconnect()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Bridge this host's controls and status to MQTT.")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--env-file", type=Path, default=DEFAULT_ENV_FILE)
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.env_file)
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    bridge = Bridge(config)
    stop_event = threading.Event()

    def _handle_signal(signum: int, _frame: object) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)

    LOGGER.info("Starting host2mqtt for %s (prefix %s)", config.hostname, config.topic_prefix)
    bridge.start()
    stop_event.wait()
    bridge.stop()
    return 0
