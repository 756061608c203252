"""
Configuration and Argument Parsing for the Value Meter daemon.

Handles CLI argument parsing and validation.
"""

import argparse
import os
from typing import List, Optional, Tuple


def validate_range(value: str) -> Tuple[float, float]:
    """
    Validate and parse the value range.

    Args:
        value: Comma-separated pair of floats "MIN,MAX", optionally in brackets

    Returns:
        Tuple of (min_value, max_value)

    Raises:
        argparse.ArgumentTypeError: If validation fails
    """
    try:
        parsed = list(map(float, value.strip("[]").split(",")))
    except ValueError:
        raise argparse.ArgumentTypeError("Range must be two float values separated by a comma.")
    if len(parsed) != 2:
        raise argparse.ArgumentTypeError("You must provide exactly two values: MIN,MAX.")
    min_value, max_value = parsed
    if min_value > max_value:
        raise argparse.ArgumentTypeError("MIN must be <= MAX.")
    return min_value, max_value


def validate_precision(value: str) -> float:
    """
    Validate and parse the precision step.

    Raises:
        argparse.ArgumentTypeError: If the value is not a float > 0
    """
    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid precision: {value!r}")
    if not parsed > 0:
        raise argparse.ArgumentTypeError("Precision must be > 0.")
    return parsed


def parse_arguments(script_file: str = None, argv: Optional[List[str]] = None):
    """
    Parse command-line arguments.

    Args:
        script_file: Path to the main script file (for default log file name)
        argv: Argument list (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(description="Value Meter - accelerating value controller with REST control.")

    # Determine default log file name
    if script_file:
        default_log_file = os.path.splitext(os.path.basename(script_file))[0] + ".log"
    else:
        default_log_file = "value_meter.log"

    parser.add_argument("--log_level", choices=["DEBUG", "INFO", "NONE"], default="INFO",
                        help="Set logging level. Default is INFO.")

    parser.add_argument("--trace_adjustments", action="store_true", default=False,
                        help="With --log_level DEBUG, also log every adjustment and acceleration reset.")

    parser.add_argument("--log_file_name", type=str, default=default_log_file,
                        help=f"Name of the log file. Default is '{default_log_file}'.")

    parser.add_argument("--range", type=validate_range, default=(0.0, 1.0),
                        help="Comma-separated MIN,MAX bounds of the value. Default is '0,1'.")

    parser.add_argument("--precision", type=validate_precision, default=0.01,
                        help="Smallest step of the value. Must be > 0. Default is 0.01.")

    parser.add_argument("--startup_value", type=float, default=None,
                        help="Optional startup value. Must lie within --range. Default is the lower bound.")

    # REST API
    parser.add_argument("--api_host", type=str, default="0.0.0.0",
                        help="Bind address for the REST API. Default is 0.0.0.0.")
    parser.add_argument("--api_port", type=int, default=8080,
                        help="Port for REST API server. Set to 0 to disable API. Default is 8080.")

    # Parse arguments
    args = parser.parse_args(argv)

    # Assign parsed range to individual variables for clarity
    args.min_value, args.max_value = args.range
    if args.startup_value is not None and not (args.min_value <= args.startup_value <= args.max_value):
        parser.error(f"--startup_value must be within [{args.min_value}, {args.max_value}].")
    if args.api_port < 0 or args.api_port > 65535:
        parser.error("--api_port must be between 0 and 65535.")
    return args
