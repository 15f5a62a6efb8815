"""User activity detection with a debounced return to inactive."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from .outcome import Outcome
from .state import ActivityFlag, StateStore

if TYPE_CHECKING:
    from .publisher import StatusPublisher

LOGGER = logging.getLogger(__name__)

SAMPLE_INTERVAL_SECONDS = 0.5
READ_FAILURE_BACKOFF_SECONDS = 2.0
DISCONNECTED_BACKOFF_SECONDS = 5.0
# Idle readings below this count as fresh input even without a decrease.
FRESH_IDLE_FLOOR_SECONDS = 2


class ActivityDebouncer:
    """Samples host idle time and publishes ``user_activity`` transitions.

    Fresh input flips the flag to active immediately. The flag only returns to
    inactive once ``idle_threshold`` seconds pass with no further input; every
    fresh input replaces the pending timer.
    """

    def __init__(
        self,
        store: StateStore,
        publisher: StatusPublisher,
        read_idle: Callable[[], Outcome],
        is_connected: Callable[[], bool],
        idle_threshold: float,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self._read_idle = read_idle
        self._is_connected = is_connected
        self.idle_threshold = idle_threshold
        self._timer_factory = timer_factory
        self._clock = clock
        self._last_idle: int | None = None
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    @property
    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())

    def start(self) -> bool:
        if self.running:
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="activity-monitor", daemon=True)
        self._thread.start()
        LOGGER.info("[activity] Monitor started (idle threshold %.1fs)", self.idle_threshold)
        return True

    def stop(self) -> None:
        self._stop.set()
        with self._timer_lock:
            timer = self._timer
            self._timer = None
        if timer:
            timer.cancel()

    def sample(self) -> bool:
        """Take one idle-time reading; returns False when the read failed."""
        outcome = self._read_idle()
        if not outcome.ok:
            LOGGER.debug("[activity] Idle time read failed: %s", outcome)
            return False
        idle = int(outcome.value)
        self._publisher.publish_idle_time(idle)
        previous = self._last_idle
        self._last_idle = idle
        if (previous is not None and idle < previous) or idle < FRESH_IDLE_FLOOR_SECONDS:
            self.record_activity()
        return True

    def record_activity(self) -> None:
        deadline = self._clock() + self.idle_threshold
        transitioned, generation = self._store.mark_active(deadline)
        timer = self._timer_factory(self.idle_threshold, self._expire, args=(generation,))
        timer.daemon = True
        with self._timer_lock:
            previous = self._timer
            self._timer = timer
        if previous:
            previous.cancel()
        timer.start()
        if transitioned:
            LOGGER.info("[activity] User active")
            self._publisher.publish_activity(ActivityFlag.ACTIVE)

    def _expire(self, generation: int) -> None:
        if not self._store.expire_activity(generation):
            return
        LOGGER.info("[activity] User inactive after %.1fs without input", self.idle_threshold)
        self._publisher.publish_activity(ActivityFlag.INACTIVE)

    def _run(self) -> None:
        while not self._stop.is_set():
            if not self._is_connected():
                self._stop.wait(DISCONNECTED_BACKOFF_SECONDS)
                continue
            try:
                ok = self.sample()
            except Exception:
                LOGGER.exception("[activity] Sampling failed")
                ok = False
            self._stop.wait(SAMPLE_INTERVAL_SECONDS if ok else READ_FAILURE_BACKOFF_SECONDS)
        LOGGER.info("[activity] Monitor stopped")
