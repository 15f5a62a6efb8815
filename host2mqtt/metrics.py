"""Host metrics: disk, CPU counters, memory, uptime, battery, network and devices."""

from __future__ import annotations

import logging
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path

import httpx
import psutil

from .outcome import Outcome
from .shell import run_tool
from .state import CpuSample

LOGGER = logging.getLogger(__name__)

_IDLE_RE = re.compile(r'"HIDIdleTime"\s*=\s*(\d+)')
_PUBLIC_IP_TIMEOUT_SECONDS = 10.0
_PROC_ROOT = Path("/proc")


@dataclass(frozen=True)
class UsageFigures:
    total: int
    used: int
    free: int
    used_percent: float
    free_percent: float


@dataclass(frozen=True)
class DeviceUse:
    microphone: bool
    camera: bool


def _figures(total: int, used: int, free: int) -> UsageFigures:
    if total <= 0:
        return UsageFigures(total=0, used=0, free=0, used_percent=0.0, free_percent=0.0)
    used_percent = 100.0 * used / total
    return UsageFigures(
        total=total,
        used=used,
        free=free,
        used_percent=used_percent,
        free_percent=100.0 - used_percent,
    )


class MetricsCollector:
    def __init__(self, public_ip_url: str, http_client: httpx.Client | None = None) -> None:
        self._public_ip_url = public_ip_url
        self._http = http_client or httpx.Client(timeout=_PUBLIC_IP_TIMEOUT_SECONDS)

    def disk(self, path: str = "/") -> Outcome:
        try:
            usage = psutil.disk_usage(path)
        except OSError as exc:
            return Outcome.failed(str(exc))
        return Outcome.success(_figures(usage.total, usage.used, usage.free))

    def memory(self) -> Outcome:
        vm = psutil.virtual_memory()
        return Outcome.success(_figures(vm.total, vm.total - vm.available, vm.available))

    def cpu_sample(self) -> Outcome:
        times = psutil.cpu_times()
        return Outcome.success(
            CpuSample(
                user=times.user,
                system=times.system,
                idle=times.idle,
                iowait=getattr(times, "iowait", 0.0),
                nice=getattr(times, "nice", 0.0),
                irq=getattr(times, "irq", 0.0),
                softirq=getattr(times, "softirq", 0.0),
                steal=getattr(times, "steal", 0.0),
            )
        )

    def uptime_seconds(self) -> Outcome:
        return Outcome.success(max(0, int(time.time() - psutil.boot_time())))

    def battery_percent(self) -> Outcome:
        battery = psutil.sensors_battery() if hasattr(psutil, "sensors_battery") else None
        if battery is None:
            return Outcome.unavailable("no battery")
        return Outcome.success(int(round(battery.percent)))

    def public_ip(self) -> Outcome:
        try:
            response = self._http.get(self._public_ip_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.debug("[metrics] Public IP lookup failed: %s", exc)
            return Outcome.failed(str(exc))
        address = response.text.strip()
        if not address:
            return Outcome.failed("empty public IP response")
        return Outcome.success(address)

    def idle_seconds(self) -> Outcome:
        """Seconds since the last keyboard or pointer input."""
        outcome = run_tool(["ioreg", "-c", "IOHIDSystem"])
        if not outcome.ok:
            return outcome
        match = _IDLE_RE.search(outcome.value)
        if not match:
            return Outcome.failed("HIDIdleTime not found in ioreg output")
        return Outcome.success(int(match.group(1)) // 1_000_000_000)

    def device_use(self, proc_root: Path = _PROC_ROOT) -> Outcome:
        """Whether any process holds a capture device open.

        Only Linux exposes this without a native helper; other platforms report
        ``UNAVAILABLE``.
        """
        if not sys.platform.startswith("linux") or not proc_root.is_dir():
            return Outcome.unavailable("device use detection requires /proc")
        microphone = False
        camera = False
        for fd_dir in proc_root.glob("[0-9]*/fd"):
            try:
                entries = list(fd_dir.iterdir())
            except OSError:
                continue
            for entry in entries:
                try:
                    target = str(entry.readlink())
                except OSError:
                    continue
                if target.startswith("/dev/video"):
                    camera = True
                elif target.startswith("/dev/snd/pcm") and target.endswith("c"):
                    microphone = True
            if microphone and camera:
                break
        return Outcome.success(DeviceUse(microphone=microphone, camera=camera))
