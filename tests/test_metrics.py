"""Tests for MetricsCollector."""

from __future__ import annotations

import os
import sys
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest
from host2mqtt.metrics import MetricsCollector
from host2mqtt.outcome import FailureKind, Outcome


def _collector(handler=None) -> MetricsCollector:  # type: ignore[no-untyped-def]
    handler = handler or (lambda request: httpx.Response(200, text="198.51.100.4\n"))
    return MetricsCollector("https://ip.example", http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_disk_figures():
    usage = SimpleNamespace(total=1000, used=400, free=600)
    with patch("host2mqtt.metrics.psutil.disk_usage", return_value=usage):
        figures = _collector().disk().value
    assert (figures.total, figures.used, figures.free) == (1000, 400, 600)
    assert figures.used_percent == pytest.approx(40.0)
    assert figures.free_percent == pytest.approx(60.0)


def test_memory_uses_available():
    vm = SimpleNamespace(total=1000, available=250)
    with patch("host2mqtt.metrics.psutil.virtual_memory", return_value=vm):
        figures = _collector().memory().value
    assert figures.used == 750
    assert figures.used_percent == pytest.approx(75.0)


def test_cpu_sample_tolerates_missing_fields():
    times = SimpleNamespace(user=1.0, system=2.0, idle=3.0)
    with patch("host2mqtt.metrics.psutil.cpu_times", return_value=times):
        sample = _collector().cpu_sample().value
    assert sample.total == pytest.approx(6.0)
    assert sample.steal == 0.0


def test_battery():
    with patch("host2mqtt.metrics.psutil.sensors_battery", return_value=SimpleNamespace(percent=86.6)):
        assert _collector().battery_percent().value == 87
    with patch("host2mqtt.metrics.psutil.sensors_battery", return_value=None):
        assert _collector().battery_percent().kind is FailureKind.UNAVAILABLE


def test_public_ip():
    assert _collector().public_ip().value == "198.51.100.4"


def test_public_ip_failure():
    outcome = _collector(lambda request: httpx.Response(503)).public_ip()
    assert outcome.kind is FailureKind.FAILED


def test_idle_seconds_from_ioreg():
    output = '    |   "HIDIdleTime" = 12500000000\n'
    with patch("host2mqtt.metrics.run_tool", return_value=Outcome.success(output)):
        assert _collector().idle_seconds().value == 12


def test_idle_seconds_missing_key():
    with patch("host2mqtt.metrics.run_tool", return_value=Outcome.success("nothing here")):
        assert not _collector().idle_seconds().ok


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="symlink layout mirrors /proc")
def test_device_use_scans_process_fds(tmp_path):
    fd_dir = tmp_path / "123" / "fd"
    fd_dir.mkdir(parents=True)
    os.symlink("/dev/video0", fd_dir / "3")
    os.symlink("/dev/snd/pcmC0D0p", fd_dir / "4")
    outcome = _collector().device_use(proc_root=tmp_path)
    assert outcome.value.camera is True
    assert outcome.value.microphone is False
