"""Audio control for the host (output volume and mute).

AppleScript's ``get volume settings`` reports ``missing value`` for outputs it
cannot drive (HDMI and some USB interfaces). For those the current source is
looked up with ``SwitchAudioSource`` and controlled through the local audio
switcher HTTP service.
"""

from __future__ import annotations

import logging

import httpx

from .outcome import Outcome
from .shell import run_tool

LOGGER = logging.getLogger(__name__)

OSASCRIPT = "/usr/bin/osascript"
SWITCHAUDIOSOURCE = "/opt/homebrew/bin/switchaudiosource"
SWITCHER_URL = "http://localhost:55777"
_HTTP_TIMEOUT_SECONDS = 5.0
_MISSING = "missing value"


class AudioController:
    def __init__(self, http_client: httpx.Client | None = None, switcher_url: str = SWITCHER_URL) -> None:
        self._http = http_client or httpx.Client(timeout=_HTTP_TIMEOUT_SECONDS)
        self._switcher_url = switcher_url.rstrip("/")

    def _osascript(self, script: str) -> Outcome:
        return run_tool([OSASCRIPT, "-e", script])

    def _current_source(self) -> str | None:
        outcome = run_tool([SWITCHAUDIOSOURCE, "-c"])
        if not outcome.ok or not outcome.value:
            LOGGER.debug("[audio] Unable to resolve current output source: %s", outcome)
            return None
        return outcome.value

    def _switcher(self, action: str, params: dict[str, str]) -> Outcome:
        source = self._current_source()
        if source is None:
            return Outcome.unavailable("audio switcher source unknown")
        try:
            response = self._http.get(f"{self._switcher_url}/{action}", params={"name": source, **params})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.warning("[audio] Audio switcher %s failed for %s: %s", action, source, exc)
            return Outcome.failed(str(exc))
        return Outcome.success(response.text.strip())

    def _scriptable(self) -> bool:
        probe = self._osascript("output volume of (get volume settings)")
        return not (probe.ok and probe.value == _MISSING)

    def get_volume(self) -> Outcome:
        outcome = self._osascript("output volume of (get volume settings)")
        if not outcome.ok:
            return outcome
        try:
            return Outcome.success(int(outcome.value))
        except ValueError:
            pass
        fallback = self._switcher("get", {"volume": ""})
        if not fallback.ok:
            return fallback
        try:
            return Outcome.success(int(round(float(fallback.value) * 100)))
        except ValueError:
            return Outcome.failed(f"unparsable volume {fallback.value!r}")

    def get_mute(self) -> Outcome:
        outcome = self._osascript("output muted of (get volume settings)")
        if not outcome.ok:
            return outcome
        if outcome.value == _MISSING:
            fallback = self._switcher("get", {"mute": ""})
            if not fallback.ok:
                return fallback
            return Outcome.success(fallback.value == "on")
        return Outcome.success(outcome.value == "true")

    def set_volume(self, level: int) -> Outcome:
        if not self._scriptable():
            return self._switcher("set", {"volume": f"{level / 100:f}"})
        return self._osascript(f"set volume output volume {level}")

    def set_mute(self, muted: bool) -> Outcome:
        if not self._scriptable():
            return self._switcher("set", {"mute": "on" if muted else "off"})
        return self._osascript(f"set volume output muted {'true' if muted else 'false'}")
