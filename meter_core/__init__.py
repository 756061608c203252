"""Meter Core - accelerating value controller, scheduler and domain actions."""
from .actions import (
    MeterAction,
    SetValue,
    AdjustValue,
    QueuedAction,
)
from .controller import (
    AcceleratingValueController,
    Subscription,
    ValueChange,
)
from .exceptions import (
    ValueMeterError,
    InvalidRangeError,
    InvalidPrecisionError,
)
from .scheduler import CooperativeScheduler, ScheduledCallback

__all__ = [
    'MeterAction',
    'SetValue',
    'AdjustValue',
    'QueuedAction',
    'AcceleratingValueController',
    'Subscription',
    'ValueChange',
    'ValueMeterError',
    'InvalidRangeError',
    'InvalidPrecisionError',
    'CooperativeScheduler',
    'ScheduledCallback',
]
