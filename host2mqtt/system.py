"""Power, keep-awake, shortcut and identity helpers for the host."""

from __future__ import annotations

import logging
import os
import platform
import re
import subprocess  # nosec B404 - keep-awake relies on a long-running caffeinate
import threading
from dataclasses import dataclass

import psutil

from .outcome import Outcome
from .shell import run_tool

LOGGER = logging.getLogger(__name__)

CAFFEINATE = "/usr/bin/caffeinate"
OSASCRIPT = "/usr/bin/osascript"
SHORTCUT_NAME_RE = re.compile(r"^[A-Za-z0-9\s\-_]+$")
POWER_ACTIONS = ("sleep", "displaysleep", "displaywake", "shutdown", "screensaver")
STOP_TIMEOUT_SECONDS = 3.0

_SERIAL_RE = re.compile(r'"IOPlatformSerialNumber"\s*=\s*"([^"]+)"')
_CHIP_RE = re.compile(r"^\s*(?:Chip|Processor Name):\s*(.+)$", re.MULTILINE)
_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_-]+")


@dataclass(frozen=True)
class DeviceIdentity:
    serial: str
    model: str
    manufacturer: str = "Apple"


class SystemController:
    def __init__(self) -> None:
        self._keep_awake: subprocess.Popen[bytes] | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Power actions

    def power_action(self, action: str) -> Outcome:
        if action == "sleep":
            return run_tool(["pmset", "sleepnow"])
        if action == "displaysleep":
            return run_tool(["pmset", "displaysleepnow"])
        if action == "displaywake":
            return run_tool([CAFFEINATE, "-u", "-t", "1"])
        if action == "shutdown":
            if hasattr(os, "getuid") and os.getuid() == 0:
                return run_tool(["shutdown", "-h", "now"])
            return run_tool([OSASCRIPT, "-e", 'tell app "System Events" to shut down'])
        if action == "screensaver":
            return run_tool(["open", "-a", "ScreenSaverEngine"])
        return Outcome.failed(f"unknown power action {action!r}")

    def run_shortcut(self, name: str) -> Outcome:
        return run_tool(["shortcuts", "run", name], timeout=60.0)

    # ------------------------------------------------------------------
    # Keep awake

    def keep_awake(self) -> Outcome:
        with self._lock:
            if self._keep_awake is not None and self._keep_awake.poll() is None:
                return Outcome.success(True)
            try:
                self._keep_awake = subprocess.Popen(  # nosec B603 - fixed argument list
                    [CAFFEINATE, "-d"],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except FileNotFoundError:
                return Outcome.unavailable("caffeinate not found")
            except OSError as exc:
                return Outcome.failed(str(exc))
        LOGGER.info("[system] Keep-awake started (pid=%s)", self._keep_awake.pid)
        return Outcome.success(True)

    def allow_sleep(self) -> Outcome:
        with self._lock:
            own = self._keep_awake
            self._keep_awake = None
        terminated: list[psutil.Process] = []
        for proc in psutil.process_iter(["name", "status"]):
            if proc.info.get("name") != "caffeinate" or proc.info.get("status") == psutil.STATUS_ZOMBIE:
                continue
            try:
                proc.terminate()
                terminated.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
                LOGGER.debug("[system] Could not stop caffeinate pid %s: %s", proc.pid, exc)
        _gone, alive = psutil.wait_procs(terminated, timeout=STOP_TIMEOUT_SECONDS)
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
        if own is not None:
            # Reap our own child so it does not linger as a zombie.
            try:
                own.wait(timeout=STOP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                LOGGER.warning("[system] caffeinate pid %s did not exit", own.pid)
        LOGGER.info("[system] Allow sleep: stopped %d caffeinate process(es)", len(terminated))
        return Outcome.success(len(terminated))

    def keep_awake_active(self) -> bool:
        for proc in psutil.process_iter(["name", "status"]):
            if proc.info.get("name") == "caffeinate" and proc.info.get("status") != psutil.STATUS_ZOMBIE:
                return True
        return False

    # ------------------------------------------------------------------
    # Identity

    def identity(self, hostname: str) -> DeviceIdentity:
        """Best-effort hardware identity for the discovery document.

        Falls back to the hostname as serial and the machine architecture as model
        when the hardware tools are missing.
        """
        serial = hostname
        outcome = run_tool(["/usr/sbin/ioreg", "-c", "IOPlatformExpertDevice", "-d", "2"])
        if outcome.ok and (match := _SERIAL_RE.search(outcome.value)):
            serial = _SAFE_ID_RE.sub("", match.group(1)) or hostname
        model = platform.machine() or "unknown"
        outcome = run_tool(["/usr/sbin/system_profiler", "SPHardwareDataType"], timeout=30.0)
        if outcome.ok and (match := _CHIP_RE.search(outcome.value)):
            model = match.group(1).strip()
        manufacturer = "Apple" if platform.system() == "Darwin" else platform.system() or "unknown"
        return DeviceIdentity(serial=serial, model=model, manufacturer=manufacturer)
