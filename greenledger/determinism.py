# -*- coding: utf-8 -*-
"""
GreenLedger Determinism Module - Utilities for Deterministic Operations

Emission totals must reconcile exactly across scopes, categories and
lifecycle stages, and report documents must be reproducible for a given
project state. This module provides:

- A freezable UTC clock shared by every component
- Half-up decimal rounding used for all emission figures
- Exact decimal summation of float inputs
- Identifier generation

Example:
    >>> from greenledger.determinism import DeterministicClock, round_half_up
    >>> round_half_up(4199.99995, 4)
    4200.0
    >>> with DeterministicClock.frozen():
    ...     a = DeterministicClock.now()

Author: GreenLang Platform Team
Date: March 2026
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, Optional, Union

Number = Union[Decimal, float, int, str]


class DeterministicClock:
    """A UTC clock that can be frozen for testing and auditing."""

    _lock = threading.Lock()
    _frozen_time: Optional[datetime] = None

    @classmethod
    def now(cls) -> datetime:
        """Current UTC time, or the frozen instant when frozen."""
        if cls._frozen_time is not None:
            return cls._frozen_time
        return datetime.now(timezone.utc)

    @classmethod
    def freeze(cls, frozen_time: Optional[datetime] = None) -> None:
        """Freeze the clock at ``frozen_time`` (default: now)."""
        with cls._lock:
            instant = frozen_time or datetime.now(timezone.utc)
            if instant.tzinfo is None:
                instant = instant.replace(tzinfo=timezone.utc)
            cls._frozen_time = instant

    @classmethod
    def unfreeze(cls) -> None:
        with cls._lock:
            cls._frozen_time = None

    @classmethod
    @contextmanager
    def frozen(cls, frozen_time: Optional[datetime] = None) -> Iterator[datetime]:
        """Context manager freezing the clock for the enclosed block."""
        cls.freeze(frozen_time)
        try:
            yield cls.now()
        finally:
            cls.unfreeze()


def utcnow() -> datetime:
    """Timezone-aware UTC now from the shared clock."""
    return DeterministicClock.now()


def utcnow_naive() -> datetime:
    """Naive UTC now, the form stored in database timestamp columns."""
    return DeterministicClock.now().replace(tzinfo=None)


def new_id() -> str:
    """Generate a new entity identifier."""
    return str(uuid.uuid4())


def to_decimal(value: Any) -> Decimal:
    """Convert a float, int, str or Decimal to Decimal without binary noise.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a numeric value: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a numeric value: {value!r}") from exc


def round_decimal(value: Number, places: int) -> Decimal:
    """Round half-up to ``places`` decimal places, returning a Decimal."""
    quantum = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def round_half_up(value: Number, places: int) -> float:
    """Round half-up to ``places`` decimal places, returning a float."""
    return float(round_decimal(value, places))


def decimal_sum(values: Iterable[Number]) -> Decimal:
    """Exact sum of numeric values."""
    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return total


__all__ = [
    "DeterministicClock",
    "utcnow",
    "utcnow_naive",
    "new_id",
    "to_decimal",
    "round_decimal",
    "round_half_up",
    "decimal_sum",
]
