"""Now-playing access through the ``media-control`` CLI."""

from __future__ import annotations

import json
import logging

from .outcome import Outcome
from .shell import run_tool, tool_available

LOGGER = logging.getLogger(__name__)

MEDIA_CONTROL = "media-control"


class MediaController:
    def available(self) -> bool:
        return tool_available(MEDIA_CONTROL)

    def stream_command(self) -> list[str]:
        return [MEDIA_CONTROL, "stream"]

    def now_playing(self) -> Outcome:
        """Fetch a full now-playing payload.

        Returns:
            ``Outcome`` wrapping the raw payload dict (empty when nothing is playing).
        """
        if not self.available():
            return Outcome.unavailable(f"{MEDIA_CONTROL} not installed")
        outcome = run_tool([MEDIA_CONTROL, "get"])
        if not outcome.ok:
            return outcome
        if not outcome.value or outcome.value == "null":
            return Outcome.success({})
        try:
            data = json.loads(outcome.value)
        except json.JSONDecodeError as exc:
            LOGGER.debug("[media] %s get returned invalid JSON: %s", MEDIA_CONTROL, exc)
            return Outcome.failed(f"invalid media-control JSON: {exc}")
        return Outcome.success(data if isinstance(data, dict) else {})

    def toggle_play_pause(self) -> Outcome:
        if not self.available():
            return Outcome.unavailable(f"{MEDIA_CONTROL} not installed")
        return run_tool([MEDIA_CONTROL, "toggle-play-pause"])
