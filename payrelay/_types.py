"""
Core types for payrelay — shared aliases.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Clock
# ═══════════════════════════════════════════════════════════════════════════════

type Clock = Callable[[], datetime]
"""Source of "now". Injected everywhere time matters so tests can freeze it."""


def utcnow() -> datetime:
    """
    Naive UTC timestamp.

    Note: all stored timestamps are naive UTC; DateTime columns round-trip
    without tzinfo on SQLite.
    """
    return datetime.now(UTC).replace(tzinfo=None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Clock",
    "utcnow",
)
