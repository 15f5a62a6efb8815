"""Tests for the periodic task scheduler."""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from host2mqtt.scheduler import Scheduler


class Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def connected():
    return Mock(return_value=True)


@pytest.fixture
def scheduler(connected, clock):
    return Scheduler(connected, clock=clock)


def test_task_runs_after_interval(scheduler, clock):
    action = Mock()
    scheduler.add("status", 30, action)
    assert scheduler.run_pending() == []
    clock.now += 30
    assert scheduler.run_pending() == ["status"]
    action.assert_called_once_with()


def test_run_immediately(scheduler):
    action = Mock()
    scheduler.add("network", 30, action, requires_connection=False, run_immediately=True)
    assert scheduler.run_pending() == ["network"]


def test_tasks_have_independent_intervals(scheduler, clock):
    fast, slow = Mock(), Mock()
    scheduler.add("fast", 30, fast)
    scheduler.add("slow", 60, slow)
    for _ in range(4):
        clock.now += 30
        scheduler.run_pending()
    assert fast.call_count == 4
    assert slow.call_count == 2


def test_disconnected_skips_publish_tasks_but_not_network(scheduler, clock, connected):
    connected.return_value = False
    publish, network = Mock(), Mock()
    scheduler.add("metrics", 60, publish)
    scheduler.add("network", 30, network, requires_connection=False)
    clock.now += 60
    assert scheduler.run_pending() == ["network"]
    publish.assert_not_called()
    network.assert_called_once_with()


def test_skipped_task_is_rescheduled(scheduler, clock, connected):
    action = Mock()
    task = scheduler.add("status", 30, action)
    connected.return_value = False
    clock.now += 30
    scheduler.run_pending()
    assert task.next_due == pytest.approx(clock.now + 30)
    connected.return_value = True
    clock.now += 30
    assert scheduler.run_pending() == ["status"]


def test_disconnected_notice_is_rate_limited(scheduler, clock, connected, monkeypatch):
    logger = Mock()
    monkeypatch.setattr("host2mqtt.scheduler.LOGGER", logger)
    connected.return_value = False
    scheduler.add("status", 10, Mock())
    for _ in range(5):
        clock.now += 10
        scheduler.run_pending()
    assert logger.info.call_count == 1
    clock.now += 60
    scheduler.run_pending()
    assert logger.info.call_count == 2


def test_failing_task_is_logged_and_rescheduled(scheduler, clock):
    action = Mock(side_effect=RuntimeError("collaborator exploded"))
    scheduler.add("power", 60, action)
    clock.now += 60
    assert scheduler.run_pending() == ["power"]
    clock.now += 60
    assert scheduler.run_pending() == ["power"]
    assert action.call_count == 2


def test_rejects_non_positive_interval(scheduler):
    with pytest.raises(ValueError):
        scheduler.add("broken", 0, Mock())


def test_wait_is_capped(scheduler, clock):
    scheduler.add("slow", 600, Mock())
    assert scheduler.seconds_until_next() == pytest.approx(1.0)
    clock.now += 600
    assert scheduler.seconds_until_next() == 0.0
