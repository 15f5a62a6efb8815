"""Status topic publishing.

``StatusPublisher`` owns every ``<prefix>/status/...`` topic. Values are read
from the collaborators (or copied out of the state store) first and published
afterwards, never under a store lock.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from .audio import AudioController
from .config import BridgeConfig
from .display import DisplayController
from .lmstudio import LMStudioClient, format_model_list
from .media import MediaController
from .media_stream import merge_media_payload
from .metrics import MetricsCollector, UsageFigures
from .state import ActivityFlag, MediaSnapshot, StateStore
from .system import SystemController
from .utils import format_uptime

LOGGER = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> bool: ...


def media_attributes(snapshot: MediaSnapshot) -> dict[str, Any]:
    return {
        "state": snapshot.playback_state.value,
        "title": snapshot.title,
        "artist": snapshot.artist,
        "album": snapshot.album,
        "app_name": snapshot.app_name,
        "duration": snapshot.duration_seconds,
        "position": snapshot.position_seconds,
    }


class StatusPublisher:
    def __init__(
        self,
        config: BridgeConfig,
        connection: Publisher,
        store: StateStore,
        audio: AudioController,
        displays: DisplayController,
        system: SystemController,
        media: MediaController,
        metrics: MetricsCollector,
        lmstudio: LMStudioClient | None = None,
    ) -> None:
        self.config = config
        self._connection = connection
        self._store = store
        self._audio = audio
        self._displays = displays
        self._system = system
        self._media = media
        self._metrics = metrics
        self._lmstudio = lmstudio
        self.status_base = f"{config.topic_prefix}/status"

    def _status(self, name: str, payload: str, retain: bool = False, qos: int = 0) -> bool:
        return self._connection.publish(f"{self.status_base}/{name}", payload, qos=qos, retain=retain)

    # Liveness -----------------------------------------------------------------

    def publish_alive(self, state: str = "online") -> None:
        self._status("alive", state, retain=True, qos=1)

    # Audio --------------------------------------------------------------------

    def publish_volume(self) -> None:
        outcome = self._audio.get_volume()
        if not outcome.ok:
            LOGGER.debug("[publish] Volume unavailable: %s", outcome)
            return
        self._status("volume", str(outcome.value))

    def publish_mute(self) -> None:
        outcome = self._audio.get_mute()
        if not outcome.ok:
            LOGGER.debug("[publish] Mute state unavailable: %s", outcome)
            return
        self._status("mute", "true" if outcome.value else "false")

    # Power --------------------------------------------------------------------

    def publish_caffeinate(self) -> None:
        self._status("caffeinate", "true" if self._system.keep_awake_active() else "false")

    def refresh_displays(self) -> None:
        """Re-enumerate displays and remember them for command routing."""
        outcome = self._displays.list_displays()
        if not outcome.ok:
            LOGGER.debug("[publish] Display list unavailable: %s", outcome)
            return
        self._store.replace_displays({display.display_id: display.name for display in outcome.value})

    def publish_brightness(self, display_id: str) -> None:
        outcome = self._displays.get_brightness(display_id)
        if not outcome.ok:
            LOGGER.debug("[publish] Brightness for display %s unavailable: %s", display_id, outcome)
            return
        self._status(f"display_{display_id}_brightness", str(outcome.value), retain=True)

    def publish_all_brightness(self) -> None:
        for display_id in self._store.displays():
            self.publish_brightness(display_id)

    # Media --------------------------------------------------------------------

    def publish_media(self, snapshot: MediaSnapshot) -> None:
        attributes = media_attributes(snapshot)
        state = snapshot.playback_state.value
        self._status("now_playing", state)
        self._status("now_playing_attr", json.dumps(attributes))
        self._status("media_state", state)
        self._status("media_title", snapshot.title)
        self._status("media_artist", snapshot.artist)
        self._status("media_album", snapshot.album)
        self._status("media_app", snapshot.app_name)
        self._status("media_duration", str(snapshot.duration_seconds))
        self._status("media_position", str(snapshot.position_seconds))
        player = dict(attributes)
        player.update(media_title=snapshot.title, media_artist=snapshot.artist, media_album=snapshot.album)
        self._status("media_player", json.dumps(player))

    def refresh_now_playing(self) -> bool:
        """Replace the media snapshot with a full read and publish it.

        Returns False, without publishing, when the read fails.
        """
        outcome = self._media.now_playing()
        if not outcome.ok:
            LOGGER.debug("[publish] Now playing unavailable: %s", outcome)
            return False
        payload = outcome.value
        snapshot = merge_media_payload(MediaSnapshot(), payload) if payload else MediaSnapshot()
        self.publish_media(self._store.replace_media(snapshot))
        LOGGER.info(
            "[publish] Now playing: %s - %s (%s)",
            snapshot.artist,
            snapshot.title,
            snapshot.playback_state.value,
        )
        return True

    # Activity -----------------------------------------------------------------

    def publish_activity(self, flag: ActivityFlag) -> None:
        self._status("user_activity", flag.value)

    def publish_idle_time(self, seconds: int) -> None:
        self._status("idle_time_seconds", str(seconds))

    # Metrics ------------------------------------------------------------------

    def _publish_usage(self, group: str, figures: UsageFigures) -> None:
        self._status(f"{group}/total", str(figures.total))
        self._status(f"{group}/used", str(figures.used))
        self._status(f"{group}/free", str(figures.free))
        self._status(f"{group}/used_percent", f"{figures.used_percent:.2f}")
        self._status(f"{group}/free_percent", f"{figures.free_percent:.2f}")

    def publish_battery(self) -> None:
        outcome = self._metrics.battery_percent()
        if outcome.ok:
            self._status("battery", str(outcome.value))

    def publish_disk(self) -> None:
        outcome = self._metrics.disk()
        if not outcome.ok:
            LOGGER.warning("[publish] Disk usage unavailable: %s", outcome)
            return
        self._publish_usage("disk", outcome.value)

    def publish_memory(self) -> None:
        outcome = self._metrics.memory()
        if not outcome.ok:
            LOGGER.warning("[publish] Memory usage unavailable: %s", outcome)
            return
        self._publish_usage("memory", outcome.value)

    def publish_cpu(self) -> None:
        outcome = self._metrics.cpu_sample()
        if not outcome.ok:
            LOGGER.warning("[publish] CPU counters unavailable: %s", outcome)
            return
        usage = self._store.cpu_usage(outcome.value)
        self._status("cpu/used_percent", f"{usage.used_percent:.2f}")
        self._status("cpu/free_percent", f"{usage.free_percent:.2f}")

    def publish_uptime(self) -> None:
        outcome = self._metrics.uptime_seconds()
        if not outcome.ok:
            return
        self._status("uptime/seconds", str(outcome.value))
        self._status("uptime/human", format_uptime(outcome.value))

    def publish_public_ip(self) -> None:
        outcome = self._metrics.public_ip()
        self._status("public_ip", outcome.value if outcome.ok else "unavailable")

    def publish_device_use(self) -> None:
        outcome = self._metrics.device_use()
        microphone = outcome.ok and outcome.value.microphone
        camera = outcome.ok and outcome.value.camera
        self._status("microphone", "ON" if microphone else "OFF")
        self._status("camera", "ON" if camera else "OFF")

    # LM Studio ----------------------------------------------------------------

    def publish_lmstudio(self) -> None:
        if self._lmstudio is None:
            return
        snapshot = self._lmstudio.snapshot()
        self._store.replace_lmstudio(snapshot)
        self._status("lmstudio_server", "online" if snapshot.running else "offline")
        if not snapshot.running:
            self._status("lmstudio_loaded_models", "[]")
            self._status("lmstudio_available_models", "[]")
            self._status("lmstudio_loaded_models_count", "0")
            self._status("lmstudio_available_models_count", "0")
            self._status("lmstudio_loaded_models_list", format_model_list(()))
            self._status("lmstudio_available_models_list", format_model_list(()))
            return
        for name, models in (("loaded", snapshot.loaded), ("available", snapshot.available)):
            records = [{"id": m.model_id, "type": m.model_type, "state": m.state} for m in models]
            self._status(f"lmstudio_{name}_models", json.dumps(records))
            self._status(f"lmstudio_{name}_models_count", str(len(models)))
            self._status(f"lmstudio_{name}_models_list", format_model_list(models))

    def publish_lmstudio_error(self, message: str) -> None:
        self._status("lmstudio_last_error", message)

    # Groups -------------------------------------------------------------------

    def publish_status_group(self) -> None:
        self.publish_volume()
        self.publish_mute()
        self.publish_device_use()
        self.publish_alive()

    def publish_metrics_group(self) -> None:
        self.publish_battery()
        self.publish_disk()
        self.publish_cpu()
        self.publish_memory()
        self.publish_uptime()
        self.publish_public_ip()

    def publish_power_group(self) -> None:
        self.publish_caffeinate()
        self.refresh_displays()
        self.publish_all_brightness()
        self.publish_lmstudio()

    def publish_all(self) -> None:
        """Full resync after a (re)connect."""
        self.publish_status_group()
        self.publish_power_group()
        if not self.refresh_now_playing():
            self.publish_media(self._store.media())
        self.publish_activity(self._store.activity().flag)
        self.publish_metrics_group()
