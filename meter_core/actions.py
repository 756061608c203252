"""
Action dataclasses - domain actions for value meter control.

These represent what the system should do, independent of input source.
All input adapters (REST, WebSocket, tests) create these actions and submit to the queue.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SetValue:
    """Set the value directly (clamped, bypasses acceleration)."""
    target: float


@dataclass(frozen=True)
class AdjustValue:
    """Relative change. Positive = up, negative = down."""
    delta: float
    precise: bool = False


# Union type for type hints
MeterAction = Union[SetValue, AdjustValue]


@dataclass
class QueuedAction:
    """
    Wrapper for actions in the queue, carrying timestamp for stale event filtering.

    Input adapters create QueuedAction(action=..., timestamp=time.time())
    and submit to the queue. Consumer checks timestamp to discard stale events.
    """
    action: MeterAction
    timestamp: float
