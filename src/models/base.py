"""Shared Pydantic base models and time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

# 9999-12-31T23:59:59.999Z, the last millisecond a datetime can hold
MAX_EPOCH_MS = 253_402_300_799_999


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to whole epoch milliseconds (floored)."""
    return (value - EPOCH) // _ONE_MS


def from_epoch_ms(value: int | float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime.

    Raises:
        ValueError: If the value is outside the range a datetime can hold.
    """
    try:
        return EPOCH + timedelta(milliseconds=value)
    except OverflowError as exc:
        raise ValueError(f"Epoch milliseconds out of range: {value!r}") from exc


class ClinisyncBase(BaseModel):
    """Base model with shared config for all Clinisync schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
