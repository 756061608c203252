"""Meter Manager - CLI configuration for the value meter daemon."""
from .config import parse_arguments, validate_range, validate_precision

__all__ = ['parse_arguments', 'validate_range', 'validate_precision']
