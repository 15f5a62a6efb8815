"""Configuration loading for the host2mqtt bridge."""

from __future__ import annotations

import logging
import os
import re
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .utils import parse_bool, parse_float, sanitize_topic_segment

LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path("/etc/host2mqtt.conf")
DEFAULT_TOPIC_ROOT = "host2mqtt"
DEFAULT_DISCOVERY_PREFIX = "homeassistant"
DEFAULT_LMSTUDIO_API_URL = "http://localhost:1234"
DEFAULT_PUBLIC_IP_URL = "https://api.ipify.org"

_ASSIGNMENT_RE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")


class ConfigError(ValueError):
    """Raised when the bridge cannot start because its configuration is unusable."""


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _strip_quotes(value: str) -> str:
    """Remove matching single or double quotes from a value."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def load_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=value`` assignments from a shell-style env file.

    Comments and blank lines are ignored. A missing file yields an empty mapping.
    """
    values: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return values
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        match = _ASSIGNMENT_RE.match(line)
        if not match:
            LOGGER.debug("Ignoring unparsable line in %s: %s", path, raw_line)
            continue
        values[match.group(1)] = _strip_quotes(match.group(2))
    return values


def _require_port(raw: str | None) -> int:
    if raw is None or not raw.strip():
        return 1883
    try:
        port = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"MQTT_PORT must be an integer, got {raw!r}") from exc
    if port <= 0 or port > 65535:
        raise ConfigError(f"MQTT_PORT out of range: {port}")
    return port


def _positive_seconds(source: Mapping[str, str], key: str, default: float) -> float:
    value = parse_float(source.get(key), default)
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None


@dataclass(frozen=True)
class LMStudioConfig:
    enabled: bool
    api_url: str


@dataclass(frozen=True)
class IntervalConfig:
    status: float
    metrics: float
    power: float
    network: float


@dataclass(frozen=True)
class BridgeConfig:
    hostname: str
    topic_root: str
    discovery_prefix: str
    idle_activity_seconds: float
    public_ip_url: str
    mqtt: MqttConfig
    lmstudio: LMStudioConfig
    intervals: IntervalConfig

    @property
    def topic_prefix(self) -> str:
        return f"{self.topic_root}/{self.hostname}"

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> BridgeConfig:
        source = env if env is not None else os.environ

        host = _strip_or_none(source.get("MQTT_HOST"))
        if not host:
            raise ConfigError("MQTT_HOST is required")

        mqtt = MqttConfig(
            host=host,
            port=_require_port(source.get("MQTT_PORT")),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
        )

        raw_hostname = _strip_or_none(source.get("HOST2MQTT_HOSTNAME")) or socket.gethostname()
        hostname = sanitize_topic_segment(raw_hostname)
        if not hostname:
            raise ConfigError(f"hostname {raw_hostname!r} is empty after sanitizing")

        topic_root = (_strip_or_none(source.get("HOST2MQTT_TOPIC_ROOT")) or DEFAULT_TOPIC_ROOT).strip("/")
        if not topic_root:
            raise ConfigError("HOST2MQTT_TOPIC_ROOT must not be empty")

        lmstudio = LMStudioConfig(
            enabled=parse_bool(source.get("LMSTUDIO_ENABLED"), False),
            api_url=(_strip_or_none(source.get("LMSTUDIO_API_URL")) or DEFAULT_LMSTUDIO_API_URL).rstrip("/"),
        )

        intervals = IntervalConfig(
            status=_positive_seconds(source, "HOST2MQTT_STATUS_INTERVAL_SECONDS", 30.0),
            metrics=_positive_seconds(source, "HOST2MQTT_METRICS_INTERVAL_SECONDS", 60.0),
            power=_positive_seconds(source, "HOST2MQTT_POWER_INTERVAL_SECONDS", 60.0),
            network=_positive_seconds(source, "HOST2MQTT_NETWORK_CHECK_SECONDS", 30.0),
        )

        return BridgeConfig(
            hostname=hostname,
            topic_root=topic_root,
            discovery_prefix=(
                _strip_or_none(source.get("HOST2MQTT_DISCOVERY_PREFIX")) or DEFAULT_DISCOVERY_PREFIX
            ).strip("/"),
            idle_activity_seconds=_positive_seconds(source, "HOST2MQTT_IDLE_ACTIVITY_SECONDS", 10.0),
            public_ip_url=_strip_or_none(source.get("HOST2MQTT_PUBLIC_IP_URL")) or DEFAULT_PUBLIC_IP_URL,
            mqtt=mqtt,
            lmstudio=lmstudio,
            intervals=intervals,
        )


def load_config(env_file: Path | None = None, env: Mapping[str, str] | None = None) -> BridgeConfig:
    """Merge the optional env file under the process environment and build the config."""
    merged: dict[str, str] = {}
    path = env_file or DEFAULT_ENV_FILE
    merged.update(load_env_file(path))
    merged.update(env if env is not None else os.environ)
    return BridgeConfig.from_env(merged)
