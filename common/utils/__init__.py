"""Utility functions for ML research."""

from .device import resolve_device

from .run_logging import setup_logger

from .tensors import (
    to_precision,
    zero_rows,
    format_rows,
)

__all__ = [
    # Devices
    "resolve_device",
    # Logging
    "setup_logger",
    # Tensor helpers
    "to_precision",
    "zero_rows",
    "format_rows",
]
