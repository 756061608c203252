"""
Tests for the value meter daemon: action dispatch, stale filtering, consumer thread
"""

import logging
import time

import pytest

from meter_core import AdjustValue, SetValue
from meter_daemon import MAX_EVENT_AGE, QUEUE_MAX_SIZE, ValueMeterDaemon


@pytest.fixture
def daemon(clock):
    return ValueMeterDaemon(api_port=0, clock=clock)


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_actions_dispatched_in_order(daemon):
    daemon.submit(SetValue(target=0.5))
    daemon.submit(AdjustValue(delta=1))

    assert daemon.process_pending_actions() == 2
    assert daemon.controller.value == pytest.approx(0.51)


def test_precise_flag_reaches_controller(daemon):
    daemon.submit(AdjustValue(delta=3, precise=True))
    daemon.process_pending_actions()
    assert daemon.controller.value == 0.0
    assert daemon.controller.scroll_accumulation == pytest.approx(0.003)


def test_stale_action_discarded(daemon, caplog):
    with caplog.at_level(logging.WARNING):
        daemon.submit(AdjustValue(delta=1), timestamp=time.time() - MAX_EVENT_AGE - 1)
        assert daemon.process_pending_actions() == 1

    assert daemon.controller.value == 0.0
    assert "Discarded stale action" in caplog.text


def test_acceleration_reset_runs_before_next_action(daemon, clock):
    daemon.submit(AdjustValue(delta=1))
    daemon.process_pending_actions()
    clock.advance(0.2)

    daemon.submit(AdjustValue(delta=1))
    daemon.process_pending_actions()

    assert daemon.controller.value == pytest.approx(0.02)


def test_rapid_actions_accelerate(daemon):
    daemon.submit(AdjustValue(delta=1))
    daemon.submit(AdjustValue(delta=1))
    daemon.process_pending_actions()
    assert daemon.controller.value == pytest.approx(0.028)


def test_unknown_action_ignored(daemon):
    daemon.submit("not-an-action")
    daemon.process_pending_actions()
    assert daemon.controller.value == 0.0


def test_submit_reports_full_queue(daemon):
    for _ in range(QUEUE_MAX_SIZE):
        assert daemon.submit(AdjustValue(delta=1))
    assert not daemon.submit(AdjustValue(delta=1))


def test_startup_value_and_range():
    daemon = ValueMeterDaemon(min_value=-1, max_value=1, precision=0.1, startup_value=0.5, api_port=0)
    assert daemon.controller.value == 0.5
    assert daemon.controller.precision == 0.1


def test_consumer_thread_processes_actions():
    daemon = ValueMeterDaemon(api_port=0)
    daemon.start()
    try:
        daemon.submit(SetValue(target=0.4))
        daemon.submit(AdjustValue(delta=-1))
        assert wait_for(lambda: daemon.controller.value == pytest.approx(0.39))
    finally:
        daemon.stop()
    assert not daemon.consumer_thread.is_alive()


def test_consumer_thread_resets_acceleration_while_idle():
    daemon = ValueMeterDaemon(api_port=0)
    daemon.start()
    try:
        daemon.submit(AdjustValue(delta=1))
        assert wait_for(lambda: daemon.controller.value > 0)
        assert wait_for(lambda: daemon.controller.acceleration_modifier == 1.0)
        assert not daemon.controller.has_pending_reset
    finally:
        daemon.stop()


def test_start_logs_initial_value(caplog):
    daemon = ValueMeterDaemon(api_port=0, startup_value=0.25)
    with caplog.at_level(logging.INFO):
        daemon.start()
        daemon.stop()
    assert "Value changed: 0.2500 -> 0.2500" in caplog.text
