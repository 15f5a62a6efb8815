"""Shared test fixtures for the host2mqtt test suite.

This module provides reusable fixtures for:
- Configuration objects built from a fake environment
- A recording MQTT connection
- Collaborator mocks returning successful outcomes
- A manual timer factory for debounce and delayed-refresh tests
"""

from __future__ import annotations

import logging
from unittest.mock import Mock

import pytest
from host2mqtt.audio import AudioController
from host2mqtt.config import BridgeConfig
from host2mqtt.display import Display, DisplayController
from host2mqtt.lmstudio import LMStudioClient
from host2mqtt.media import MediaController
from host2mqtt.metrics import DeviceUse, MetricsCollector, UsageFigures
from host2mqtt.outcome import Outcome
from host2mqtt.publisher import StatusPublisher
from host2mqtt.state import CpuSample, LMStudioSnapshot, StateStore
from host2mqtt.system import DeviceIdentity, SystemController

# ============================================================================
# Test doubles
# ============================================================================


class RecordingConnection:
    """Stands in for ConnectionManager.publish/subscribe and records traffic."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.published: list[tuple[str, str, int, bool]] = []
        self.subscriptions: list[str] = []

    def is_connected(self) -> bool:
        return self.connected

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> bool:
        if not self.connected:
            return False
        self.published.append((topic, payload, qos, retain))
        return True

    def subscribe(self, topic: str, qos: int = 1) -> bool:
        self.subscriptions.append(topic)
        return True

    def topics(self) -> list[str]:
        return [topic for topic, *_ in self.published]

    def last(self, topic: str) -> str | None:
        for published_topic, payload, _qos, _retain in reversed(self.published):
            if published_topic == topic:
                return payload
        return None

    def clear(self) -> None:
        self.published.clear()


class ManualTimer:
    """threading.Timer replacement that only fires when told to."""

    def __init__(self, interval, function, args=None, kwargs=None) -> None:  # type: ignore[no-untyped-def]
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class TimerFactory:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None) -> ManualTimer:  # type: ignore[no-untyped-def]
        timer = ManualTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled]


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    return Mock(spec=logging.Logger)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def base_env() -> dict[str, str]:
    return {
        "MQTT_HOST": "broker.local",
        "MQTT_PORT": "1883",
        "HOST2MQTT_HOSTNAME": "studio-mac",
    }


@pytest.fixture
def bridge_config(base_env) -> BridgeConfig:
    return BridgeConfig.from_env(base_env)


@pytest.fixture
def lmstudio_config(base_env) -> BridgeConfig:
    return BridgeConfig.from_env({**base_env, "LMSTUDIO_ENABLED": "true"})


# ============================================================================
# MQTT / State Fixtures
# ============================================================================


@pytest.fixture
def connection() -> RecordingConnection:
    return RecordingConnection()


@pytest.fixture
def store() -> StateStore:
    return StateStore()


@pytest.fixture
def timer_factory() -> TimerFactory:
    return TimerFactory()


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def audio():
    mock = Mock(spec=AudioController)
    mock.get_volume.return_value = Outcome.success(40)
    mock.get_mute.return_value = Outcome.success(False)
    mock.set_volume.return_value = Outcome.success("")
    mock.set_mute.return_value = Outcome.success("")
    return mock


@pytest.fixture
def displays():
    mock = Mock(spec=DisplayController)
    mock.available.return_value = True
    mock.list_displays.return_value = Outcome.success([Display("1", "Studio Display")])
    mock.get_brightness.return_value = Outcome.success(70)
    mock.set_brightness.return_value = Outcome.success("")
    return mock


@pytest.fixture
def system():
    mock = Mock(spec=SystemController)
    mock.power_action.return_value = Outcome.success("")
    mock.run_shortcut.return_value = Outcome.success("")
    mock.keep_awake.return_value = Outcome.success(True)
    mock.allow_sleep.return_value = Outcome.success(1)
    mock.keep_awake_active.return_value = False
    mock.identity.return_value = DeviceIdentity(serial="C02XYZ", model="Apple M2 Max")
    return mock


@pytest.fixture
def media():
    mock = Mock(spec=MediaController)
    mock.available.return_value = True
    mock.stream_command.return_value = ["media-control", "stream"]
    mock.now_playing.return_value = Outcome.success({})
    mock.toggle_play_pause.return_value = Outcome.success("")
    return mock


@pytest.fixture
def metrics():
    mock = Mock(spec=MetricsCollector)
    mock.disk.return_value = Outcome.success(UsageFigures(1000, 250, 750, 25.0, 75.0))
    mock.memory.return_value = Outcome.success(UsageFigures(2000, 500, 1500, 25.0, 75.0))
    mock.cpu_sample.return_value = Outcome.success(CpuSample(user=10.0, system=5.0, idle=85.0))
    mock.uptime_seconds.return_value = Outcome.success(93_784)
    mock.battery_percent.return_value = Outcome.success(87)
    mock.public_ip.return_value = Outcome.success("203.0.113.7")
    mock.device_use.return_value = Outcome.success(DeviceUse(microphone=True, camera=False))
    mock.idle_seconds.return_value = Outcome.success(30)
    return mock


@pytest.fixture
def lmstudio():
    mock = Mock(spec=LMStudioClient)
    mock.cli_available.return_value = True
    mock.snapshot.return_value = LMStudioSnapshot(running=False)
    mock.start_server.return_value = Outcome.success("")
    mock.stop_server.return_value = Outcome.success("")
    mock.load_model.return_value = Outcome.success("")
    mock.unload_model.return_value = Outcome.success("")
    return mock


@pytest.fixture
def publisher(bridge_config, connection, store, audio, displays, system, media, metrics) -> StatusPublisher:
    return StatusPublisher(bridge_config, connection, store, audio, displays, system, media, metrics)
