"""Conversions between plain Python values and database column values."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal


def numeric_to_float(value: Decimal | int | float | None) -> float:
    """Return a numeric column value as a float; NULL becomes 0."""
    if value is None:
        return 0.0
    return float(value)


def float_to_numeric(value: float) -> Decimal:
    """Return the exact decimal written by the shortest form of a float."""
    return Decimal(repr(float(value)))


def to_date(value: date | datetime | str) -> date:
    """Return the calendar date of a datetime, date or ISO date string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise TypeError(f"cannot convert {type(value).__name__} to a date")


def to_text(value: str | None) -> str:
    """Return a text column value as a string; NULL becomes the empty string."""
    if value is None:
        return ""
    return str(value)


def to_uuid(value: uuid.UUID | str | bytes) -> uuid.UUID:
    """Return a UUID from a UUID, its text form or its 16 raw bytes."""
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        return uuid.UUID(value)
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 16:
            raise ValueError(f"a UUID needs 16 bytes, got {len(value)}")
        return uuid.UUID(bytes=bytes(value))
    raise TypeError(f"cannot convert {type(value).__name__} to a UUID")