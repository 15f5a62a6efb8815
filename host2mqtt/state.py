"""Shared bridge state.

Every resource has its own lock. Readers receive copies; writers go through the
read-modify-write helpers below so a lock is never held while publishing.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum


class PlaybackState(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    IDLE = "idle"


class ActivityFlag(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class MediaSnapshot:
    title: str = ""
    artist: str = ""
    album: str = ""
    app_name: str = ""
    playback_state: PlaybackState = PlaybackState.IDLE
    duration_seconds: int = 0
    position_seconds: int = 0


@dataclass(frozen=True)
class ActivityState:
    flag: ActivityFlag = ActivityFlag.INACTIVE
    last_transition: float = 0.0
    pending_deadline: float | None = None
    generation: int = 0


@dataclass(frozen=True)
class CpuSample:
    user: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    iowait: float = 0.0
    nice: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    steal: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.user + self.system + self.idle + self.iowait + self.nice + self.irq + self.softirq + self.steal
        )


@dataclass(frozen=True)
class CpuUsage:
    used_percent: float
    free_percent: float


@dataclass(frozen=True)
class LMStudioModel:
    model_id: str
    model_type: str = ""
    state: str = ""

    @property
    def loaded(self) -> bool:
        return self.state == "loaded"


@dataclass(frozen=True)
class LMStudioSnapshot:
    running: bool = False
    loaded: tuple[LMStudioModel, ...] = ()
    available: tuple[LMStudioModel, ...] = ()


def compute_cpu_usage(previous: CpuSample, current: CpuSample) -> CpuUsage:
    """Percentages over the interval between two counter samples.

    A zero or negative total delta (no time elapsed, counter reset) reports 0% used.
    """
    total = current.total - previous.total
    if total <= 0:
        return CpuUsage(used_percent=0.0, free_percent=100.0)
    idle = (current.idle + current.iowait) - (previous.idle + previous.iowait)
    used = 100.0 * (total - idle) / total
    used = min(100.0, max(0.0, used))
    return CpuUsage(used_percent=used, free_percent=100.0 - used)


@dataclass
class StateStore:
    """Owned container for everything the components share."""

    clock: Callable[[], float] = time.monotonic
    _media: MediaSnapshot = field(default_factory=MediaSnapshot)
    _activity: ActivityState = field(default_factory=ActivityState)
    _cpu: CpuSample | None = None
    _lmstudio: LMStudioSnapshot = field(default_factory=LMStudioSnapshot)
    _displays: dict[str, str] = field(default_factory=dict)
    _media_lock: threading.Lock = field(default_factory=threading.Lock)
    _activity_lock: threading.Lock = field(default_factory=threading.Lock)
    _cpu_lock: threading.Lock = field(default_factory=threading.Lock)
    _lmstudio_lock: threading.Lock = field(default_factory=threading.Lock)
    _displays_lock: threading.Lock = field(default_factory=threading.Lock)

    # Media -----------------------------------------------------------------

    def media(self) -> MediaSnapshot:
        with self._media_lock:
            return self._media

    def replace_media(self, snapshot: MediaSnapshot) -> MediaSnapshot:
        with self._media_lock:
            self._media = snapshot
            return snapshot

    def update_media(self, merge) -> MediaSnapshot:  # type: ignore[no-untyped-def]
        """Apply ``merge(current) -> new`` atomically and return the new snapshot."""
        with self._media_lock:
            self._media = merge(self._media)
            return self._media

    # Activity --------------------------------------------------------------

    def activity(self) -> ActivityState:
        with self._activity_lock:
            return self._activity

    def mark_active(self, deadline: float) -> tuple[bool, int]:
        """Record fresh activity and arm a new debounce generation.

        Returns:
            ``(transitioned, generation)`` where ``transitioned`` is True when the
            flag moved from inactive to active.
        """
        now = self.clock()
        with self._activity_lock:
            current = self._activity
            transitioned = current.flag is ActivityFlag.INACTIVE
            self._activity = ActivityState(
                flag=ActivityFlag.ACTIVE,
                last_transition=now if transitioned else current.last_transition,
                pending_deadline=deadline,
                generation=current.generation + 1,
            )
            return transitioned, self._activity.generation

    def expire_activity(self, generation: int) -> bool:
        """Flip to inactive if ``generation`` is still the live debounce timer."""
        now = self.clock()
        with self._activity_lock:
            current = self._activity
            if current.generation != generation or current.flag is ActivityFlag.INACTIVE:
                return False
            self._activity = replace(
                current,
                flag=ActivityFlag.INACTIVE,
                last_transition=now,
                pending_deadline=None,
            )
            return True

    # CPU -------------------------------------------------------------------

    def cpu_usage(self, sample: CpuSample) -> CpuUsage:
        """Compute usage against the previous sample and store ``sample`` in its place."""
        with self._cpu_lock:
            previous = self._cpu or CpuSample()
            self._cpu = sample
        return compute_cpu_usage(previous, sample)

    # LM Studio -------------------------------------------------------------

    def lmstudio(self) -> LMStudioSnapshot:
        with self._lmstudio_lock:
            return self._lmstudio

    def replace_lmstudio(self, snapshot: LMStudioSnapshot) -> None:
        with self._lmstudio_lock:
            self._lmstudio = snapshot

    # Displays --------------------------------------------------------------

    def displays(self) -> dict[str, str]:
        with self._displays_lock:
            return dict(self._displays)

    def replace_displays(self, displays: dict[str, str]) -> None:
        with self._displays_lock:
            self._displays = dict(displays)

    def has_display(self, display_id: str) -> bool:
        with self._displays_lock:
            return display_id in self._displays
