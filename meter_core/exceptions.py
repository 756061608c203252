"""
Custom exceptions for the value meter.
"""


class ValueMeterError(Exception):
    """Base exception for value meter errors."""
    pass


class InvalidRangeError(ValueMeterError):
    """Raised when the lower bound of a controlled value exceeds its upper bound."""

    def __init__(self, message: str, min_value: float = None, max_value: float = None):
        super().__init__(message)
        self.min_value = min_value
        self.max_value = max_value


class InvalidPrecisionError(ValueMeterError):
    """Raised when the precision step is not strictly positive."""

    def __init__(self, message: str, precision: float = None):
        super().__init__(message)
        self.precision = precision
