"""
Cooperative delayed-callback scheduler.

Callbacks are queued with a delay and run by whoever owns the scheduler,
on the owner's thread, when it calls run_pending(). The daemon's consumer
thread drives it between queue reads; tests drive it with a fake clock.
"""

import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ScheduledCallback:
    """Handle for a callback queued on a CooperativeScheduler."""

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self._callback = callback
        self._cancelled = False
        self._fired = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def active(self) -> bool:
        """True while the callback is still waiting to run."""
        return not (self._cancelled or self._fired)

    def cancel(self):
        """Cancel the callback. Cancelling a fired or cancelled callback does nothing."""
        if self._fired:
            return
        self._cancelled = True

    def _run(self):
        self._fired = True
        self._callback()


class CooperativeScheduler:
    """
    Single-threaded scheduler for delayed callbacks.

    Nothing runs in the background: due callbacks only run inside
    run_pending(), so they never interleave with the owner's own work.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic time source in seconds. Tests pass a fake clock.
        """
        self._clock = clock
        self._heap: List[Tuple[float, int, ScheduledCallback]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._clock()

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledCallback:
        """
        Queue callback to run once delay seconds from now.

        Args:
            delay: Seconds to wait (negative values run on the next run_pending())
            callback: Zero-argument function

        Returns:
            Handle that can cancel the callback
        """
        due = self._clock() + max(0.0, delay)
        handle = ScheduledCallback(due, callback)
        heapq.heappush(self._heap, (due, next(self._counter), handle))
        return handle

    def _discard_inactive(self):
        while self._heap and not self._heap[0][2].active:
            heapq.heappop(self._heap)

    def run_pending(self) -> int:
        """
        Run every due, non-cancelled callback in due order.

        Returns:
            Number of callbacks that ran
        """
        ran = 0
        now = self._clock()
        while True:
            self._discard_inactive()
            if not self._heap or self._heap[0][0] > now:
                break
            _, _, handle = heapq.heappop(self._heap)
            try:
                handle._run()
            except Exception as e:
                logger.error(f"Scheduled callback error: {e}", exc_info=True)
            ran += 1
        return ran

    def time_until_next(self) -> Optional[float]:
        """Seconds until the earliest pending callback, or None if nothing is pending."""
        self._discard_inactive()
        if not self._heap:
            return None
        return max(0.0, self._heap[0][0] - self._clock())

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle in self._heap if handle.active)
