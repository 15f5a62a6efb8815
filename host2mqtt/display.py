"""Display brightness control through the BetterDisplay CLI."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from .outcome import Outcome
from .shell import run_tool, tool_available

LOGGER = logging.getLogger(__name__)

BETTERDISPLAY = "betterdisplaycli"


@dataclass(frozen=True)
class Display:
    display_id: str
    name: str


def _parse_identifiers(output: str) -> list[Display]:
    # The CLI prints comma-separated JSON objects rather than an array.
    records = json.loads(f"[{output}]")
    displays: list[Display] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        display_id = str(record.get("displayID") or "").strip()
        if not display_id:
            continue
        name = str(record.get("name") or record.get("productName") or f"Display {display_id}")
        displays.append(Display(display_id=display_id, name=name))
    return displays


class DisplayController:
    def available(self) -> bool:
        return tool_available(BETTERDISPLAY)

    def list_displays(self) -> Outcome:
        """Enumerate connected displays.

        Returns:
            ``Outcome`` wrapping a list of ``Display``; ``UNAVAILABLE`` when the
            CLI is not installed.
        """
        if not self.available():
            return Outcome.unavailable(f"{BETTERDISPLAY} not installed")
        outcome = run_tool([BETTERDISPLAY, "get", "-identifiers"])
        if not outcome.ok:
            LOGGER.warning("[display] Listing displays failed: %s", outcome)
            return outcome
        if not outcome.value:
            return Outcome.success([])
        try:
            return Outcome.success(_parse_identifiers(outcome.value))
        except json.JSONDecodeError as exc:
            LOGGER.warning("[display] %s returned invalid JSON: %s", BETTERDISPLAY, exc)
            return Outcome.failed(f"invalid display JSON: {exc}")

    def get_brightness(self, display_id: str) -> Outcome:
        outcome = run_tool([BETTERDISPLAY, "get", f"-displayID={display_id}", "-brightness", "-value"])
        if not outcome.ok:
            return outcome
        try:
            return Outcome.success(int(round(float(outcome.value) * 100)))
        except ValueError:
            return Outcome.failed(f"unparsable brightness {outcome.value!r}")

    def set_brightness(self, display_id: str, level: int) -> Outcome:
        return run_tool([BETTERDISPLAY, "set", f"-displayID={display_id}", f"-brightness={level}%"])
