"""
Accelerating Value Controller.

Turns a stream of relative adjustments (scroll ticks, key presses, knob
clicks) into changes of a bounded value with a fixed precision step.
Sustained input speeds the adjustments up; a short pause resets the speed.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .exceptions import InvalidPrecisionError, InvalidRangeError
from .precision import MAX_DISPLAY_THRESHOLD, almost_bigger, clamp, display_text, quantize, sign

logger = logging.getLogger(__name__)

# Base change per unit of delta in coarse mode
ADJUST_STEP = 0.01
# Precise mode banks a tenth of the coarse change per unit of delta
PRECISE_STEP_FACTOR = 0.1

MAX_ACCELERATION = 5.0
ACCELERATION_MULTIPLIER = 1.8
ACCELERATION_RESET_DELAY = 0.150  # seconds of inactivity before acceleration resets


@dataclass(frozen=True)
class ValueChange:
    """Change notification: old and new value (equal when forced by trigger_change)."""
    old_value: float
    new_value: float


ChangeCallback = Callable[[ValueChange], None]


class Subscription:
    """Handle returned by subscribe(). unsubscribe() may be called any number of times."""

    def __init__(self, controller: "AcceleratingValueController", callback: ChangeCallback):
        self._controller = controller
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self):
        if not self._active:
            return
        self._active = False
        self._controller._remove_subscription(self)


class AcceleratingValueController:
    """
    Bounded value adjusted by accelerating relative steps.

    Every non-zero adjust() multiplies the next adjustment by 1.8, up to 5x.
    The multiplier falls back to 1x once no adjustment arrived for 150 ms;
    that reset is a callback on the injected scheduler, so it runs on the
    scheduler owner's thread.

    In precise mode small deltas are accumulated and applied one precision
    step at a time, so fine input is neither lost nor applied below the
    declared precision.

    Observers only hear about the initial value when asked to: pass
    on_change to the constructor, subscribe with run_once_immediately=True,
    or call trigger_change() once the observers are in place (the daemon
    does the latter on start).
    """

    def __init__(
        self,
        scheduler,
        min_value: float = 0.0,
        max_value: float = 1.0,
        precision: float = 0.01,
        value: Optional[float] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        """
        Initialize the controller.

        Args:
            scheduler: Object with schedule(delay, callback) returning a cancellable handle
            min_value: Lower bound of the value
            max_value: Upper bound of the value
            precision: Smallest meaningful step (must be > 0)
            value: Initial value (clamped). Defaults to min_value.
            on_change: Optional observer, subscribed and notified immediately

        Raises:
            InvalidRangeError: If min_value > max_value
            InvalidPrecisionError: If precision <= 0
        """
        if min_value > max_value:
            raise InvalidRangeError(
                f"min_value ({min_value}) must not exceed max_value ({max_value})",
                min_value=min_value, max_value=max_value)
        if not precision > 0:
            raise InvalidPrecisionError(f"precision must be > 0, got {precision}", precision=precision)

        self._scheduler = scheduler
        self._min_value = float(min_value)
        self._max_value = float(max_value)
        self._precision = float(precision)
        initial = self._min_value if value is None else value
        self._value = clamp(float(initial), self._min_value, self._max_value)

        self._acceleration_modifier = 1.0
        # Precision is coarse (e.g. 0.01); this keeps track of finer adjustments until a full step is reached
        self._scroll_accumulation = 0.0
        self._acceleration_debounce = None

        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

        if on_change is not None:
            self.subscribe(on_change, run_once_immediately=True)

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    @property
    def quantized_value(self) -> float:
        """Value rounded to the nearest precision step counted from min_value."""
        with self._lock:
            return self._quantized()

    @property
    def min_value(self) -> float:
        return self._min_value

    @property
    def max_value(self) -> float:
        return self._max_value

    @property
    def precision(self) -> float:
        return self._precision

    @property
    def acceleration_modifier(self) -> float:
        with self._lock:
            return self._acceleration_modifier

    @property
    def scroll_accumulation(self) -> float:
        with self._lock:
            return self._scroll_accumulation

    @property
    def has_pending_reset(self) -> bool:
        """True while an acceleration reset is scheduled and has not yet run."""
        with self._lock:
            return self._acceleration_debounce is not None and self._acceleration_debounce.active

    def _quantized(self) -> float:
        return clamp(quantize(self._value, self._precision, self._min_value), self._min_value, self._max_value)

    def _normalized(self) -> float:
        span = self._max_value - self._min_value
        if span == 0:
            return 1.0
        return (self._value - self._min_value) / span

    def get_state(self) -> dict:
        """Get current state as a dictionary (for REST API and WebSocket)."""
        with self._lock:
            normalized = self._normalized()
            return {
                "value": self._value,
                "quantized_value": round(self._quantized(), 10),
                "display": display_text(normalized),
                "percent": round(normalized * 100, 2),
                "is_max": normalized >= MAX_DISPLAY_THRESHOLD,
                "min": self._min_value,
                "max": self._max_value,
                "precision": self._precision,
                "acceleration": self._acceleration_modifier,
                "accumulation": self._scroll_accumulation,
            }

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, callback: ChangeCallback, run_once_immediately: bool = False) -> Subscription:
        """
        Register a callback for value changes.

        Args:
            callback: Called with a ValueChange on every change, on the mutating thread
            run_once_immediately: Also call it right away with the current value

        Returns:
            Subscription handle
        """
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
            current = self._value
        if run_once_immediately:
            self._dispatch([subscription], ValueChange(current, current))
        return subscription

    def _remove_subscription(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def trigger_change(self):
        """Notify every observer of the current value without changing it."""
        with self._lock:
            current = self._value
            subscriptions = list(self._subscriptions)
        self._dispatch(subscriptions, ValueChange(current, current))

    def _notify(self, old_value: float, new_value: float):
        with self._lock:
            subscriptions = list(self._subscriptions)
        self._dispatch(subscriptions, ValueChange(old_value, new_value))

    def _dispatch(self, subscriptions: List[Subscription], change: ValueChange):
        for subscription in subscriptions:
            if not subscription.active:
                continue
            try:
                subscription.callback(change)
            except Exception as e:
                logger.error(f"Value change callback error: {e}", exc_info=True)

    # =========================================================================
    # Mutation
    # =========================================================================

    def set_value(self, value: float):
        """
        Set the value directly (e.g. when loading a stored setting).

        The value is clamped to the bounds. Acceleration and accumulated
        precise input are left untouched.
        """
        with self._lock:
            old_value = self._value
            self._value = clamp(float(value), self._min_value, self._max_value)
            new_value = self._value
        if new_value != old_value:
            logger.debug(f"Value set: {old_value} -> {new_value}")
            self._notify(old_value, new_value)

    def increase(self, amount: float = 1, precise: bool = False):
        self.adjust(amount, precise)

    def decrease(self, amount: float = 1, precise: bool = False):
        self.adjust(-amount, precise)

    def _reset_acceleration(self):
        with self._lock:
            self._acceleration_modifier = 1.0
        logger.debug("Acceleration reset after inactivity")

    def _apply_offset(self, offset: float):
        with self._lock:
            old_value = self._value
            self._value = clamp(old_value + offset, self._min_value, self._max_value)
            new_value = self._value
        if new_value != old_value:
            self._notify(old_value, new_value)

    def _at_bound(self, direction: int) -> bool:
        with self._lock:
            if direction > 0:
                return self._value >= self._max_value
            return self._value <= self._min_value

    def _discard_whole_steps(self, accumulation: float) -> float:
        """Drop every whole precision step from accumulation at once, keeping the remainder."""
        if not math.isfinite(accumulation):
            return 0.0
        remainder = math.fmod(abs(accumulation), self._precision)
        if almost_bigger(remainder, self._precision):
            remainder = 0.0
        return math.copysign(remainder, accumulation)

    def adjust(self, delta: float, precise: bool = False):
        """
        Adjust the value by delta units.

        Args:
            delta: Signed amount of input (e.g. scroll ticks). Zero, NaN and
                infinite deltas do nothing.
            precise: Accumulate the change and apply it in precision steps
        """
        if delta == 0:
            return
        if not math.isfinite(delta):
            logger.warning(f"Ignoring non-finite adjustment: {delta}")
            return

        with self._lock:
            # every adjustment increases the rate of the following ones up to a cutoff.
            # the debounce resets it on inactivity.
            if self._acceleration_debounce is not None:
                self._acceleration_debounce.cancel()
            self._acceleration_debounce = self._scheduler.schedule(ACCELERATION_RESET_DELAY, self._reset_acceleration)

            modifier = self._acceleration_modifier
            delta *= modifier
            self._acceleration_modifier = min(MAX_ACCELERATION, modifier * ACCELERATION_MULTIPLIER)

        precision = self._precision
        logger.debug(f"Adjust: delta={delta:.4f} (x{modifier:.2f}), precise={precise}")

        if precise:
            with self._lock:
                self._scroll_accumulation += delta * ADJUST_STEP * PRECISE_STEP_FACTOR
                accumulation = self._scroll_accumulation

            while almost_bigger(abs(accumulation), precision):
                if self._at_bound(sign(accumulation)):
                    # further steps would be clamped away
                    with self._lock:
                        self._scroll_accumulation = self._discard_whole_steps(accumulation)
                    break
                self._apply_offset(sign(accumulation) * precision)
                with self._lock:
                    if accumulation < 0:
                        self._scroll_accumulation = min(0.0, accumulation + precision)
                    else:
                        self._scroll_accumulation = max(0.0, accumulation - precision)
                    accumulation = self._scroll_accumulation
        else:
            self._apply_offset(sign(delta) * max(precision, abs(delta * ADJUST_STEP)))
