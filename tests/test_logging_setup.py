"""
Tests for logging setup and the WebSocket noise filter
"""

import logging

import pytest

from api.rest import WebSocketErrorFilter
from logging_setup import ADJUSTMENT_TRACE_LOGGERS, LIBRARY_LOG_LEVELS, module_levels, setup_logging
from meter_core import AcceleratingValueController, CooperativeScheduler


@pytest.fixture
def restore_loggers():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    names = list(ADJUSTMENT_TRACE_LOGGERS) + list(LIBRARY_LOG_LEVELS)
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    root.handlers = handlers
    root.setLevel(level)
    for name, saved in levels.items():
        logging.getLogger(name).setLevel(saved)


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)


def test_websocket_filter_drops_disconnect_noise():
    ws_filter = WebSocketErrorFilter()
    assert not ws_filter.filter(_record("Exception in ASGI application: WebSocketDisconnect 1001"))
    assert ws_filter.filter(_record("Value changed: 0.1 -> 0.2"))


def test_module_levels_hide_adjustment_trace_by_default():
    levels = module_levels("DEBUG")
    assert levels["meter_core.controller"] == logging.INFO
    assert levels["meter_core.scheduler"] == logging.INFO
    assert levels["uvicorn"] == logging.WARNING


def test_module_levels_trace_needs_debug():
    assert module_levels("DEBUG", trace_adjustments=True)["meter_core.controller"] == logging.DEBUG
    assert module_levels("INFO", trace_adjustments=True)["meter_core.controller"] == logging.INFO
    assert module_levels("NONE", trace_adjustments=True)["meter_core.controller"] == logging.CRITICAL


def test_setup_logging_writes_to_file(tmp_path, restore_loggers):
    logger, stop_logging = setup_logging("DEBUG", "meter.log", str(tmp_path), version="1.0.0")
    try:
        logging.getLogger("meter_core.controller").info("hello from the controller")
    finally:
        stop_logging()
        stop_logging()

    content = (tmp_path / "meter.log").read_text()
    assert "Starting Value Meter v1.0.0" in content
    assert "hello from the controller" in content


def _adjust_once():
    controller = AcceleratingValueController(CooperativeScheduler())
    controller.adjust(1, False)


def test_adjustment_trace_off_by_default(tmp_path, restore_loggers):
    _, stop_logging = setup_logging("DEBUG", "meter.log", str(tmp_path))
    try:
        _adjust_once()
        logging.getLogger("meter_daemon").debug("daemon debug line")
    finally:
        stop_logging()

    content = (tmp_path / "meter.log").read_text()
    assert "Adjust: delta=" not in content
    assert "daemon debug line" in content


def test_adjustment_trace_switch(tmp_path, restore_loggers):
    _, stop_logging = setup_logging("DEBUG", "meter.log", str(tmp_path), trace_adjustments=True)
    try:
        _adjust_once()
    finally:
        stop_logging()

    content = (tmp_path / "meter.log").read_text()
    assert "adjustment trace on" in content
    assert "Adjust: delta=1.0000" in content
