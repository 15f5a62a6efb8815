"""Thin subprocess wrapper shared by the host collaborators."""

from __future__ import annotations

import logging
import shutil
import subprocess  # nosec B404 - host control relies on CLI calls
from collections.abc import Sequence

from .outcome import Outcome

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def tool_available(name: str) -> bool:
    return shutil.which(name) is not None


def run_tool(args: Sequence[str], timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Outcome:
    """Run a CLI tool and return its stripped stdout.

    A missing executable yields ``UNAVAILABLE``; a non-zero exit, a timeout or an
    OS error yields ``FAILED``.
    """
    try:
        result = subprocess.run(  # nosec B603 - argument list, no shell
            list(args),
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
    except FileNotFoundError:
        return Outcome.unavailable(f"{args[0]} not found")
    except subprocess.TimeoutExpired:
        LOGGER.debug("[shell] %s timed out after %.1fs", args[0], timeout)
        return Outcome.failed(f"{args[0]} timed out")
    except OSError as exc:
        return Outcome.failed(f"{args[0]}: {exc}")
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip() or f"exit status {result.returncode}"
        LOGGER.debug("[shell] %s exited with %s: %s", " ".join(args), result.returncode, detail)
        return Outcome.failed(detail)
    return Outcome.success(result.stdout.strip())
