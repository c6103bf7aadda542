import logging
import threading
from datetime import datetime, timezone

import pytest

from circulation.services.notification_sweep import SweepResult
from circulation.services.scheduler import NotificationScheduler

FIXED_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakeSession:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_run_once_uses_injected_clock_and_session():
    sessions = []
    calls = []

    def factory():
        session = FakeSession()
        sessions.append(session)
        return session

    def fake_sweep(db, now=None):
        calls.append((db, now))
        return SweepResult(overdue_alerts=2)

    scheduler = NotificationScheduler(factory, clock=lambda: FIXED_NOW, sweep=fake_sweep)
    result = scheduler.run_once()

    assert result.overdue_alerts == 2
    assert calls == [(sessions[0], FIXED_NOW)]
    assert sessions[0].closed
    assert scheduler.runs == 1


def test_run_once_swallows_sweep_failure(caplog):
    def broken_sweep(db, now=None):
        raise RuntimeError("database is gone")

    session = FakeSession()
    scheduler = NotificationScheduler(lambda: session, clock=lambda: FIXED_NOW, sweep=broken_sweep)
    caplog.set_level(logging.INFO)

    assert scheduler.run_once() is None
    assert session.closed
    assert scheduler.runs == 1
    assert "notification_sweep_failed" in caplog.text


def test_start_runs_periodically_until_stopped():
    ticks = []
    done = threading.Event()

    def counting_sweep(db, now=None):
        ticks.append(now)
        if len(ticks) >= 2:
            done.set()
        return SweepResult()

    scheduler = NotificationScheduler(
        FakeSession,
        interval_seconds=0.01,
        initial_delay_seconds=0,
        clock=lambda: FIXED_NOW,
        sweep=counting_sweep,
    )
    scheduler.start()
    try:
        assert done.wait(5)
        assert scheduler.is_running
    finally:
        scheduler.stop(timeout=5)

    assert not scheduler.is_running
    assert scheduler.runs >= 2


def test_stop_before_first_run():
    scheduler = NotificationScheduler(
        FakeSession,
        interval_seconds=60,
        initial_delay_seconds=60,
        sweep=lambda db, now=None: SweepResult(),
    )
    scheduler.start()
    scheduler.stop(timeout=5)

    assert scheduler.runs == 0
    assert not scheduler.is_running


@pytest.mark.parametrize("interval", [0, -5])
def test_interval_must_be_positive(interval):
    with pytest.raises(ValueError):
        NotificationScheduler(FakeSession, interval_seconds=interval)
