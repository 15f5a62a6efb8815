"""Inbound command dispatch.

Commands arrive on ``<prefix>/command/<name>``. Routes are tried in order and
the first whose pattern fully matches the topic consumes the message, whether
or not its payload turns out to be valid.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .audio import AudioController
from .config import BridgeConfig
from .display import DisplayController
from .lmstudio import LMStudioClient
from .media import MediaController
from .state import StateStore
from .system import POWER_ACTIONS, SHORTCUT_NAME_RE, SystemController
from .utils import parse_bool_literal, parse_percent

if TYPE_CHECKING:
    from .publisher import StatusPublisher

LOGGER = logging.getLogger(__name__)

NOW_PLAYING_REFRESH_DELAY_SECONDS = 0.5
LMSTUDIO_REFRESH_DELAYS = {
    "start": 3.0,
    "stop": 2.0,
    "load": 5.0,
    "unload": 2.0,
}


class CommandValidationError(ValueError):
    """Raised when a command payload fails validation; the command is dropped."""


Handler = Callable[[re.Match[str], str], None]


@dataclass(frozen=True)
class Route:
    name: str
    pattern: re.Pattern[str]
    handler: Handler


def _percent(payload: str) -> int:
    try:
        return parse_percent(payload)
    except ValueError as exc:
        raise CommandValidationError(f"expected an integer 0..100, got {payload!r}") from exc


def _boolean(payload: str) -> bool:
    try:
        return parse_bool_literal(payload)
    except ValueError as exc:
        raise CommandValidationError(str(exc)) from exc


class CommandRouter:
    def __init__(
        self,
        config: BridgeConfig,
        store: StateStore,
        publisher: StatusPublisher,
        audio: AudioController,
        displays: DisplayController,
        system: SystemController,
        media: MediaController,
        lmstudio: LMStudioClient | None = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self.config = config
        self._store = store
        self._publisher = publisher
        self._audio = audio
        self._displays = displays
        self._system = system
        self._media = media
        self._lmstudio = lmstudio
        self._timer_factory = timer_factory
        self.command_base = f"{config.topic_prefix}/command"
        self.routes = self._build_routes()

    def _build_routes(self) -> list[Route]:
        table: list[tuple[str, str, Handler]] = [
            ("volume", "volume", self._handle_volume),
            ("mute", "mute", self._handle_mute),
            ("set", "set", self._handle_set),
            ("brightness", r"display_(?P<display_id>[^/]+)_brightness", self._handle_brightness),
            ("runshortcut", "runshortcut", self._handle_shortcut),
            ("keepawake", "keepawake", self._handle_keepawake),
            ("playpause", "playpause", self._handle_playpause),
        ]
        if self._lmstudio is not None:
            table.extend(
                [
                    ("lmstudio_server", "lmstudio_server", self._handle_lmstudio_server),
                    ("lmstudio_load_model", "lmstudio_load_model", self._handle_lmstudio_load),
                    ("lmstudio_unload_model", "lmstudio_unload_model", self._handle_lmstudio_unload),
                ]
            )
        base = re.escape(self.command_base)
        return [Route(name, re.compile(f"{base}/{pattern}"), handler) for name, pattern, handler in table]

    def route(self, topic: str, payload: str) -> bool:
        """Dispatch one command; returns False when no route matched."""
        for route in self.routes:
            match = route.pattern.fullmatch(topic)
            if match is None:
                continue
            LOGGER.info("[router] %s <- %r", route.name, payload)
            try:
                route.handler(match, payload)
            except CommandValidationError as exc:
                LOGGER.warning("[router] Rejected %s command: %s", route.name, exc)
            except Exception:
                LOGGER.exception("[router] %s handler failed", route.name)
            return True
        LOGGER.debug("[router] No route for topic %s", topic)
        return False

    def _later(self, delay: float, action: Callable[[], None]) -> None:
        def _run() -> None:
            try:
                action()
            except Exception:
                LOGGER.exception("[router] Delayed refresh failed")

        timer = self._timer_factory(delay, _run)
        timer.daemon = True
        timer.start()

    # ------------------------------------------------------------------
    # Audio

    def _handle_volume(self, _match: re.Match[str], payload: str) -> None:
        level = _percent(payload)
        outcome = self._audio.set_volume(level)
        if not outcome.ok:
            LOGGER.warning("[router] Setting volume to %s failed: %s", level, outcome)
        self._publisher.publish_volume()
        self._publisher.publish_mute()

    def _handle_mute(self, _match: re.Match[str], payload: str) -> None:
        muted = _boolean(payload)
        outcome = self._audio.set_mute(muted)
        if not outcome.ok:
            LOGGER.warning("[router] Setting mute to %s failed: %s", muted, outcome)
        self._publisher.publish_mute()
        self._publisher.publish_volume()

    # ------------------------------------------------------------------
    # Power and displays

    def _handle_set(self, _match: re.Match[str], payload: str) -> None:
        if payload not in POWER_ACTIONS:
            LOGGER.warning("[router] Unknown set action %r", payload)
            return
        outcome = self._system.power_action(payload)
        if not outcome.ok:
            LOGGER.warning("[router] Power action %s failed: %s", payload, outcome)

    def _handle_brightness(self, match: re.Match[str], payload: str) -> None:
        display_id = match.group("display_id")
        level = _percent(payload)
        if not self._store.has_display(display_id):
            LOGGER.warning("[router] Ignoring brightness for unknown display %s", display_id)
            return
        outcome = self._displays.set_brightness(display_id, level)
        if not outcome.ok:
            LOGGER.warning("[router] Setting brightness of display %s failed: %s", display_id, outcome)
            return
        self._publisher.publish_brightness(display_id)

    def _handle_shortcut(self, _match: re.Match[str], payload: str) -> None:
        if not payload or not SHORTCUT_NAME_RE.fullmatch(payload):
            raise CommandValidationError(f"invalid shortcut name {payload!r}")
        outcome = self._system.run_shortcut(payload)
        if not outcome.ok:
            LOGGER.warning("[router] Shortcut %r failed: %s", payload, outcome)

    def _handle_keepawake(self, _match: re.Match[str], payload: str) -> None:
        enabled = _boolean(payload)
        outcome = self._system.keep_awake() if enabled else self._system.allow_sleep()
        if not outcome.ok:
            LOGGER.warning("[router] Keep-awake %s failed: %s", enabled, outcome)
        self._publisher.publish_caffeinate()

    # ------------------------------------------------------------------
    # Media

    def _handle_playpause(self, _match: re.Match[str], payload: str) -> None:
        if payload != "playpause":
            raise CommandValidationError(f"expected 'playpause', got {payload!r}")
        outcome = self._media.toggle_play_pause()
        if not outcome.ok:
            LOGGER.warning("[router] Play/pause failed: %s", outcome)
            return
        self._later(NOW_PLAYING_REFRESH_DELAY_SECONDS, self._publisher.refresh_now_playing)

    # ------------------------------------------------------------------
    # LM Studio

    def _handle_lmstudio_server(self, _match: re.Match[str], payload: str) -> None:
        assert self._lmstudio is not None
        if payload == "start":
            outcome = self._lmstudio.start_server()
        elif payload == "stop":
            outcome = self._lmstudio.stop_server()
        else:
            raise CommandValidationError(f"expected 'start' or 'stop', got {payload!r}")
        if not outcome.ok:
            self._publisher.publish_lmstudio_error(outcome.detail)
            return
        self._later(LMSTUDIO_REFRESH_DELAYS[payload], self._publisher.publish_lmstudio)

    def _handle_lmstudio_load(self, _match: re.Match[str], payload: str) -> None:
        assert self._lmstudio is not None
        model_id = payload.strip()
        if not model_id:
            raise CommandValidationError("model id is required")
        outcome = self._lmstudio.load_model(model_id)
        if not outcome.ok:
            self._publisher.publish_lmstudio_error(f"Failed to load {model_id}: {outcome.detail}")
            return
        self._later(LMSTUDIO_REFRESH_DELAYS["load"], self._publisher.publish_lmstudio)

    def _handle_lmstudio_unload(self, _match: re.Match[str], payload: str) -> None:
        assert self._lmstudio is not None
        model_id = payload.strip()
        outcome = self._lmstudio.unload_model(None if model_id in ("", "all") else model_id)
        if not outcome.ok:
            self._publisher.publish_lmstudio_error(f"Failed to unload {model_id or 'all'}: {outcome.detail}")
            return
        self._later(LMSTUDIO_REFRESH_DELAYS["unload"], self._publisher.publish_lmstudio)
