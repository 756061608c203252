"""
Logging Setup for the Value Meter daemon.

All records go through a QueueHandler on the root logger and are written
by a listener thread to a rotating file and the console. Per-module levels
keep the per-adjustment trace of meter_core and the uvicorn chatter out of
the logs unless asked for.
"""

import logging
import os
import threading
from logging.handlers import RotatingFileHandler, QueueHandler, QueueListener
from queue import Queue
from typing import Dict

from api.rest import WebSocketErrorFilter

# Centralized logging format with thread, module, function, and line number
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(threadName)s %(module)s:%(funcName)s:%(lineno)d - %(message)s'

# Loggers that emit one DEBUG line per adjustment or timer callback
ADJUSTMENT_TRACE_LOGGERS = ("meter_core.controller", "meter_core.scheduler")

# Third-party loggers capped regardless of --log_level
LIBRARY_LOG_LEVELS = {
    "uvicorn": logging.WARNING,
    "uvicorn.error": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "fastapi": logging.WARNING,
}


def module_levels(log_level: str, trace_adjustments: bool = False) -> Dict[str, int]:
    """
    Compute per-logger levels.

    Args:
        log_level: "DEBUG", "INFO" or "NONE"
        trace_adjustments: Let the per-adjustment DEBUG trace through

    Returns:
        Mapping of logger name to level
    """
    levels = dict(LIBRARY_LOG_LEVELS)
    if log_level == "NONE":
        trace_level = logging.CRITICAL
    elif log_level == "DEBUG" and trace_adjustments:
        trace_level = logging.DEBUG
    else:
        trace_level = logging.INFO
    for name in ADJUSTMENT_TRACE_LOGGERS:
        levels[name] = trace_level
    return levels


def setup_logging(
    log_level: str,
    log_file_name: str,
    script_dir: str,
    version: str = "",
    trace_adjustments: bool = False,
    max_bytes: int = 4*1024*1024,
    backup_count: int = 5,
) -> tuple:
    """
    Set up queued logging to a rotating file and the console.

    Returns:
        Tuple of (logger, stop_logging_func)
    """
    root_level = {"DEBUG": logging.DEBUG, "INFO": logging.INFO}.get(log_level, logging.CRITICAL)

    ws_filter = WebSocketErrorFilter()
    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(os.path.join(script_dir, log_file_name),
                                       maxBytes=max_bytes, backupCount=backup_count)
    console_handler = logging.StreamHandler()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        handler.addFilter(ws_filter)
    # Console never shows DEBUG; the file gets whatever the loggers let through
    console_handler.setLevel(max(root_level, logging.INFO))

    log_queue = Queue()
    root_logger = logging.getLogger()
    root_logger.handlers = [QueueHandler(log_queue)]
    root_logger.setLevel(root_level)
    for name, level in module_levels(log_level, trace_adjustments).items():
        logging.getLogger(name).setLevel(level)

    listener = QueueListener(log_queue, file_handler, console_handler, respect_handler_level=True)
    listener.start()

    logger = logging.getLogger(__name__)
    version_str = f" v{version}" if version else ""
    trace_str = " (adjustment trace on)" if trace_adjustments and log_level == "DEBUG" else ""
    logger.info(f">----- Starting Value Meter{version_str}{trace_str}. Initializing...")

    stopped = threading.Event()

    def stop_logging():
        if stopped.is_set():
            return
        stopped.set()
        listener.stop()
        file_handler.close()

    return logger, stop_logging
