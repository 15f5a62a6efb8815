"""Fixed-interval task scheduling on a single control thread."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

DISCONNECTED_NOTICE_INTERVAL_SECONDS = 60.0
MAX_WAIT_SECONDS = 1.0


@dataclass
class PeriodicTask:
    name: str
    interval: float
    action: Callable[[], None]
    requires_connection: bool = True
    next_due: float = 0.0


class Scheduler:
    """Runs registered tasks when due.

    Tasks that need the broker are skipped while disconnected (and rescheduled
    as if they ran). A task that raises is logged and still rescheduled.
    """

    def __init__(
        self,
        is_connected: Callable[[], bool],
        clock: Callable[[], float] = time.monotonic,
        notice_interval: float = DISCONNECTED_NOTICE_INTERVAL_SECONDS,
    ) -> None:
        self._is_connected = is_connected
        self._clock = clock
        self._notice_interval = notice_interval
        self._last_notice: float | None = None
        self.tasks: list[PeriodicTask] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def add(
        self,
        name: str,
        interval: float,
        action: Callable[[], None],
        requires_connection: bool = True,
        run_immediately: bool = False,
    ) -> PeriodicTask:
        if interval <= 0:
            raise ValueError(f"interval for {name} must be positive")
        now = self._clock()
        task = PeriodicTask(
            name=name,
            interval=interval,
            action=action,
            requires_connection=requires_connection,
            next_due=now if run_immediately else now + interval,
        )
        self.tasks.append(task)
        return task

    def _notice_disconnected(self, now: float, name: str) -> None:
        if self._last_notice is not None and now - self._last_notice < self._notice_interval:
            return
        self._last_notice = now
        LOGGER.info("[scheduler] Broker disconnected; skipping %s and other publish tasks", name)

    def run_pending(self, now: float | None = None) -> list[str]:
        """Run every due task once; returns the names of tasks that executed."""
        if now is None:
            now = self._clock()
        ran: list[str] = []
        for task in self.tasks:
            if now < task.next_due:
                continue
            task.next_due = now + task.interval
            if task.requires_connection and not self._is_connected():
                self._notice_disconnected(now, task.name)
                continue
            try:
                task.action()
            except Exception:
                LOGGER.exception("[scheduler] Task %s failed", task.name)
            ran.append(task.name)
        return ran

    def seconds_until_next(self, now: float | None = None) -> float:
        if not self.tasks:
            return MAX_WAIT_SECONDS
        if now is None:
            now = self._clock()
        soonest = min(task.next_due for task in self.tasks)
        return max(0.0, min(MAX_WAIT_SECONDS, soonest - now))

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        LOGGER.debug("[scheduler] Started with %d task(s)", len(self.tasks))
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(self.seconds_until_next())
        LOGGER.debug("[scheduler] Stopped")
