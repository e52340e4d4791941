"""Core utilities for the CEU Certificates API.

This module exports commonly used utilities for easy importing:
    from core import get_logger
"""

from core.logger import (
    bind_contextvars,
    bound_contextvars,
    clear_contextvars,
    get_logger,
)

__all__ = [
    "get_logger",
    "bind_contextvars",
    "bound_contextvars",
    "clear_contextvars",
]
