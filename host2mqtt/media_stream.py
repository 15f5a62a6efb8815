"""Now-playing stream reconciliation.

``media-control stream`` prints one JSON object per line. Events carrying
``"diff": true`` hold only the fields that changed; the reconciler merges them
into the current ``MediaSnapshot`` and republishes the media topics.
"""

from __future__ import annotations

import json
import logging
import subprocess  # nosec B404 - the stream is a long-running CLI
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from .state import MediaSnapshot, PlaybackState, StateStore

if TYPE_CHECKING:
    from .publisher import StatusPublisher

LOGGER = logging.getLogger(__name__)

_TEXT_FIELDS = (("title", "title"), ("artist", "artist"), ("album", "album"))
_DURATION_SECONDS_KEYS = ("duration", "totalTime", "totalDuration")
_DURATION_MICROS_KEYS = ("durationMicros",)
_POSITION_SECONDS_KEYS = ("elapsedTime", "position")
_POSITION_MICROS_KEYS = ("positionMicros", "elapsedTimeMicros")


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _first_seconds(payload: Mapping[str, Any], second_keys: Iterable[str], micro_keys: Iterable[str]) -> int | None:
    for key in second_keys:
        number = _number(payload.get(key))
        if number is not None:
            return int(number)
    for key in micro_keys:
        number = _number(payload.get(key))
        if number is not None:
            return int(number) // 1_000_000
    return None


def merge_media_payload(snapshot: MediaSnapshot, payload: Mapping[str, Any]) -> MediaSnapshot:
    """Merge a (possibly partial) now-playing payload into ``snapshot``.

    Fields absent from ``payload`` or carrying an unexpected type keep their
    current value. ``playing: false`` means paused, not idle.
    """
    changes: dict[str, Any] = {}
    for key, attr in _TEXT_FIELDS:
        value = payload.get(key)
        if isinstance(value, str):
            changes[attr] = value
    app_name = payload.get("appName")
    if not isinstance(app_name, str):
        app_name = payload.get("bundleIdentifier")
    if isinstance(app_name, str):
        changes["app_name"] = app_name
    playing = payload.get("playing")
    if isinstance(playing, bool):
        changes["playback_state"] = PlaybackState.PLAYING if playing else PlaybackState.PAUSED
    duration = _first_seconds(payload, _DURATION_SECONDS_KEYS, _DURATION_MICROS_KEYS)
    if duration is not None:
        changes["duration_seconds"] = duration
    position = _first_seconds(payload, _POSITION_SECONDS_KEYS, _POSITION_MICROS_KEYS)
    if position is not None:
        changes["position_seconds"] = position
    if not changes:
        return snapshot
    return replace(snapshot, **changes)


def parse_stream_line(line: str) -> tuple[dict[str, Any], bool] | None:
    """Decode one stream line into ``(payload, is_diff)``.

    Returns ``None`` for blank lines and for events without a usable ``payload``
    object. An empty payload only counts on a full refresh (``"diff": false``),
    where it means nothing is playing. Raises ``ValueError`` for undecodable JSON.
    """
    line = line.strip()
    if not line:
        return None
    event = json.loads(line)
    if not isinstance(event, dict):
        return None
    payload = event.get("payload")
    is_diff = event.get("diff") is not False
    if not isinstance(payload, dict):
        return None
    if not payload and is_diff:
        return None
    return payload, is_diff


class MediaStreamReconciler:
    """Supervised reader thread for the now-playing stream."""

    def __init__(
        self,
        store: StateStore,
        publisher: StatusPublisher,
        command: list[str],
        is_connected: Callable[[], bool],
        popen: Callable[..., subprocess.Popen[str]] = subprocess.Popen,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._command = command
        self._is_connected = is_connected
        self._popen = popen
        self._thread: threading.Thread | None = None
        self._process: subprocess.Popen[str] | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())

    def start(self) -> bool:
        """Start the reader if it is not already running; return True when started."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                return False
            self._thread = threading.Thread(target=self._run, name="media-stream", daemon=True)
            self._thread.start()
        LOGGER.info("[media] Now-playing stream started")
        return True

    def stop(self) -> None:
        with self._lock:
            process = self._process
            self._process = None
        if process and process.poll() is None:
            process.terminate()

    def handle_line(self, line: str) -> MediaSnapshot | None:
        """Apply one stream line; returns the published snapshot, if any."""
        try:
            parsed = parse_stream_line(line)
        except ValueError as exc:
            LOGGER.debug("[media] Skipping malformed stream line: %s", exc)
            return None
        if parsed is None:
            return None
        if not self._is_connected():
            LOGGER.debug("[media] Dropping stream update while disconnected")
            return None
        payload, is_diff = parsed
        if is_diff:
            snapshot = self._store.update_media(lambda current: merge_media_payload(current, payload))
        else:
            snapshot = self._store.replace_media(merge_media_payload(MediaSnapshot(), payload))
        self._publisher.publish_media(snapshot)
        return snapshot

    def _run(self) -> None:
        try:
            process = self._popen(
                self._command,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            LOGGER.warning("[media] Unable to start %s: %s", self._command[0], exc)
            return
        with self._lock:
            self._process = process
        try:
            assert process.stdout is not None
            for line in process.stdout:
                try:
                    self.handle_line(line)
                except Exception:
                    LOGGER.exception("[media] Failed to apply stream update")
        except (OSError, ValueError) as exc:
            LOGGER.warning("[media] Stream read failed: %s", exc)
        finally:
            if process.poll() is None:
                process.terminate()
            LOGGER.info("[media] Now-playing stream ended; it restarts on the next connect")
