"""Input data models shared by the analytics core."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from cloud_cost_analytics.exceptions import SeriesOrderError


def to_utc_datetime(value: str | date | datetime) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepts ISO-8601 strings (``2024-01-15``, ``2024-01-15T06:00:00Z``),
    ``date`` and ``datetime`` objects. Naive values are taken to be UTC.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    elif not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_utc_date(value: str | date | datetime) -> date:
    """Calendar day (UTC) of a timestamp."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return to_utc_datetime(value).date()


class DataPoint(BaseModel):
    """
    A single observation in a cost series.

    Series are ordered ascending by timestamp. The core never sorts them.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    value: float
    metadata: dict[str, Any] | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def normalize_timestamp(cls, value: Any) -> Any:
        if isinstance(value, (str, date)):
            return to_utc_datetime(value)
        return value

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return to_utc_datetime(value)

    @property
    def is_weekend(self) -> bool:
        """True for Saturday and Sunday (UTC)."""
        return self.timestamp.weekday() >= 5


def to_series(
    points: Mapping[Any, float] | Iterable[DataPoint | Mapping[str, Any] | tuple],
) -> list[DataPoint]:
    """
    Build a series of DataPoints from collaborator-supplied data.

    Accepts a ``{timestamp: value}`` mapping, or an iterable of DataPoints,
    ``{"timestamp": ..., "value": ...}`` dicts or ``(timestamp, value)``
    tuples. Order is preserved as given.
    """
    if isinstance(points, Mapping):
        return [DataPoint(timestamp=ts, value=value) for ts, value in points.items()]

    series = []
    for point in points:
        if isinstance(point, DataPoint):
            series.append(point)
        elif isinstance(point, Mapping):
            series.append(DataPoint(**point))
        else:
            timestamp, value = point
            series.append(DataPoint(timestamp=timestamp, value=value))
    return series


def ensure_ordered(series: list[DataPoint]) -> None:
    """
    Check that a series is strictly ascending by timestamp.

    Raises:
        SeriesOrderError: On the first duplicate or out-of-order timestamp.
    """
    for index in range(1, len(series)):
        previous = series[index - 1].timestamp
        current = series[index].timestamp
        if current <= previous:
            raise SeriesOrderError(index, previous, current)
