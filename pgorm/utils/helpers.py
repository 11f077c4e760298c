"""
Small string and identifier helpers shared by the ORM and the model layer.
"""

from __future__ import annotations

import itertools
import secrets
import time

UNIQID_LENGTH = 14
_COUNTER_MODULO = 16**6

# Per-process sequence starting at a random offset.
_sequence = itertools.count(secrets.randbelow(_COUNTER_MODULO))


def ucfirst(value: str) -> str:
    """Upper-case the first character of a string, leaving the rest untouched."""
    return value[:1].upper() + value[1:]


def uniqid(prefix: str = "", more_entropy: bool = False) -> str:
    """
    Build a time-ordered unique identifier of 14 hexadecimal characters.

    Eight hex digits of Unix seconds followed by six hex digits of a
    per-process counter. The counter starts at a random offset and wraps, so
    one process never repeats an identifier within a second unless it issues
    more than 16**6 of them. Identifiers from later seconds sort after earlier ones.

    Parameters
    ----------
    prefix : str
        Prepended verbatim to the identifier.
    more_entropy : bool
        Append a ``.<random int>`` suffix for extra uniqueness.
    """
    token = f"{int(time.time()) & 0xFFFFFFFF:08x}{next(_sequence) % _COUNTER_MODULO:06x}"
    suffix = f".{secrets.randbelow(100_000_000)}" if more_entropy else ""
    return f"{prefix}{token}{suffix}"


__all__ = ["UNIQID_LENGTH", "ucfirst", "uniqid"]
