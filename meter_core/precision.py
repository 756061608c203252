"""
Precision helpers for bounded, stepped values.

Floating-point sums of small steps rarely land exactly on a threshold,
so comparisons against the precision step go through almost_bigger().
"""

# Tolerance used when deciding whether an accumulated amount reached one step
ALMOST_EPSILON = 1e-7

# Displayed values at or above this level read as "MAX"
MAX_DISPLAY_THRESHOLD = 0.995


def almost_bigger(value: float, threshold: float, epsilon: float = ALMOST_EPSILON) -> bool:
    """Return True if value is bigger than, or within epsilon of, threshold."""
    return value >= threshold - epsilon


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def quantize(value: float, precision: float, origin: float = 0.0) -> float:
    """
    Round value to the nearest multiple of precision, measured from origin.

    Args:
        value: Value to round
        precision: Step size (must be > 0)
        origin: Value the steps are counted from (usually the lower bound)

    Returns:
        The rounded value
    """
    steps = round((value - origin) / precision)
    return origin + steps * precision


def display_text(value: float) -> str:
    """Label for a 0..1 value: "MAX" near the top, otherwise whole percent."""
    if value >= MAX_DISPLAY_THRESHOLD:
        return "MAX"
    return str(int(round(value * 100)))
