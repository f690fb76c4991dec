"""Exceptions raised by Cloud Cost Analytics."""

from datetime import datetime


class CostAnalyticsError(Exception):
    """Base error for the analytics core."""

    pass


class SeriesOrderError(CostAnalyticsError, ValueError):
    """A series is not strictly ascending by timestamp."""

    def __init__(self, index: int, previous: datetime, current: datetime):
        self.index = index
        self.previous = previous
        self.current = current
        kind = "duplicate" if previous == current else "out-of-order"
        super().__init__(
            f"Series has {kind} timestamp at index {index}: "
            f"{current.isoformat()} follows {previous.isoformat()}"
        )


class ConfigurationError(CostAnalyticsError):
    """Configuration files could not be parsed or validated."""

    pass
