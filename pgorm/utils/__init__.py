"""
Utilities package for pgorm.

Exports shared helpers for logging and identifier generation.
Keep this package lightweight and free of ORM-specific logic.
"""

from pgorm.utils.helpers import ucfirst, uniqid
from pgorm.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "ucfirst",
    "uniqid",
]
