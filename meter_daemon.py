"""
Value Meter - accelerating value controller daemon

Owns one AcceleratingValueController and feeds it actions submitted by
input adapters (REST API, WebSocket clients). All controller mutations and
its acceleration-reset timer run on the single consumer thread.
"""

__version__ = "1.0.0"

import os
import queue
import signal
import socket
import sys
import threading
import time
from queue import Queue
from typing import Callable, Optional

import logging

from meter_core import (
    AcceleratingValueController, AdjustValue, CooperativeScheduler,
    MeterAction, QueuedAction, SetValue, ValueChange,
)
from meter_manager import parse_arguments
from logging_setup import setup_logging

# Parameters
MAX_EVENT_AGE = 2.0  # seconds
QUEUE_MAX_SIZE = 100  # Maximum queued events before backpressure
CONSUMER_IDLE_TIMEOUT = 1.0  # seconds - upper bound on a blocking queue read

# Module-level logger
logger = logging.getLogger(__name__)


class ValueMeterDaemon:
    """Runs the controller on a consumer thread fed by an action queue."""

    def __init__(self, min_value: float = 0.0, max_value: float = 1.0, precision: float = 0.01,
                 startup_value: Optional[float] = None, api_host: str = "0.0.0.0", api_port: int = 8080,
                 clock: Callable[[], float] = time.monotonic):
        self.queue: Queue = Queue(maxsize=QUEUE_MAX_SIZE)
        self.scheduler = CooperativeScheduler(clock)
        self.controller = AcceleratingValueController(
            self.scheduler,
            min_value=min_value,
            max_value=max_value,
            precision=precision,
            value=startup_value,
        )
        self.api_host = api_host
        self.api_port = api_port
        self.api_thread = None
        self._log_subscription = None
        self.consumer_thread = threading.Thread(target=self.consumer, daemon=True, name="ConsumerThread")

    def submit(self, action: MeterAction, timestamp: Optional[float] = None) -> bool:
        """
        Queue an action for the consumer.

        Returns:
            False if the queue is full and the action was dropped
        """
        queued = QueuedAction(action=action, timestamp=time.time() if timestamp is None else timestamp)
        try:
            self.queue.put_nowait(queued)
        except queue.Full:
            logger.warning(f"Action queue full, dropping {action}")
            return False
        return True

    def _next_timeout(self) -> float:
        pending = self.scheduler.time_until_next()
        if pending is None:
            return CONSUMER_IDLE_TIMEOUT
        return min(pending, CONSUMER_IDLE_TIMEOUT)

    def consumer(self):
        """Processes queued actions and runs due scheduler callbacks."""
        while True:
            try:
                queued = self.queue.get(timeout=self._next_timeout())
            except queue.Empty:
                self.scheduler.run_pending()
                continue

            if queued is None:  # Sentinel for consumer shutdown
                logger.info("Consumer thread exiting...")
                break

            # Expired timers must run before the action that follows them
            self.scheduler.run_pending()
            self._handle(queued)

    def process_pending_actions(self) -> int:
        """
        Drain the queue on the calling thread.

        Returns:
            Number of actions handled (stale ones included)
        """
        handled = 0
        while True:
            try:
                queued = self.queue.get_nowait()
            except queue.Empty:
                break
            if queued is None:
                continue
            self.scheduler.run_pending()
            self._handle(queued)
            handled += 1
        self.scheduler.run_pending()
        return handled

    def _handle(self, queued: QueuedAction):
        event_age = time.time() - queued.timestamp
        if event_age > MAX_EVENT_AGE:
            logger.warning(f"Discarded stale action: {queued.action}")
            return

        action = queued.action
        # Dispatch based on action type
        try:
            if isinstance(action, SetValue):
                logger.debug(f"Setting value to {action.target}")
                self.controller.set_value(action.target)
            elif isinstance(action, AdjustValue):
                self.controller.adjust(action.delta, action.precise)
            else:
                logger.debug(f"Unknown action type: {type(action).__name__}")
        except Exception as e:
            logger.error(f"Error processing action {action}: {e}", exc_info=True)

    def start(self):
        """Starts the consumer thread and, if enabled, the API server."""
        def log_state_change(change: ValueChange):
            state = self.controller.get_state()
            logger.info(f"Value changed: {change.old_value:.4f} -> {change.new_value:.4f} "
                        f"(display={state['display']}, accel={state['acceleration']:.2f})")
        self._log_subscription = self.controller.subscribe(log_state_change)

        # Publish the initial value to every observer
        self.controller.trigger_change()

        self.consumer_thread.start()

        # Start REST API server if enabled
        if self.api_port > 0:
            from api import start_api_server
            self.api_thread = start_api_server(self.queue, self.controller, host=self.api_host, port=self.api_port)

    def stop(self):
        """Stops the daemon gracefully."""
        logger.info("Stopping daemon...")
        self.queue.put(None)  # Sentinel to unblock the consumer
        if self.consumer_thread.is_alive():
            self.consumer_thread.join(timeout=2)
        if self._log_subscription:
            self._log_subscription.unsubscribe()
            self._log_subscription = None
        logger.info("Daemon stopped.")


def signal_handler(sig, frame, daemon, stop_logging_func):
    """Handles SIGINT and shuts down the daemon."""
    logger.info("SIGINT received, shutting down...")
    daemon.stop()
    stop_logging_func()
    sys.exit(0)


def port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(1)
    try:
        return sock.connect_ex((host, port)) == 0
    finally:
        sock.close()


def main(argv=None):
    args = parse_arguments(__file__, argv)
    _, stop_logging = setup_logging(args.log_level, args.log_file_name,
                                    os.path.dirname(os.path.abspath(__file__)),
                                    version=__version__, trace_adjustments=args.trace_adjustments)

    # Log the configurations for confirmation
    logger.info(f"---> Configuration:")
    logger.info(f"     Range: [{args.min_value}, {args.max_value}], precision={args.precision}")
    if args.startup_value is not None:
        logger.info(f"     Startup value: {args.startup_value}")
    else:
        logger.info(f"     Startup value: {args.min_value} (lower bound)")
    logger.info(f"     Log level: {args.log_level}, file: {args.log_file_name}, adjustment trace: {args.trace_adjustments}")
    if args.api_port > 0:
        logger.info(f"     REST API: http://{args.api_host}:{args.api_port}")
    else:
        logger.info(f"     REST API: disabled")
    logger.info(f"<--- End configuration")

    # Check if another instance is already running (by checking if API port is in use)
    if args.api_port > 0 and port_in_use(args.api_port):
        logger.error(f"Another instance is already running (port {args.api_port} in use). Exiting.")
        stop_logging()
        sys.exit(1)

    daemon = ValueMeterDaemon(
        args.min_value,
        args.max_value,
        args.precision,
        args.startup_value,
        args.api_host,
        args.api_port,
    )
    signal.signal(signal.SIGINT, lambda sig, frame: signal_handler(sig, frame, daemon, stop_logging))
    daemon.start()

    try:
        while True:
            time.sleep(3)  # Keep the main thread alive
    except KeyboardInterrupt:
        signal_handler(None, None, daemon, stop_logging)
    finally:
        stop_logging()


if __name__ == "__main__":
    main()
