"""Period-over-period cost delta analysis."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any, Literal

from cloud_cost_analytics.analysis.stats import finite_values, std_dev
from cloud_cost_analytics.config.schema import DeltaAnalysisConfig
from cloud_cost_analytics.models import to_utc_date

logger = logging.getLogger(__name__)

Trend = Literal["increasing", "decreasing", "stable"]

# Per-service daily costs: {service: {day: cost}}
ServiceCosts = Mapping[str, Mapping[str | date | datetime, float | str]]


@dataclass(frozen=True)
class CostDelta:
    """Change between two cost values."""

    absolute: float
    percentage: float
    trend: Trend


@dataclass(frozen=True)
class ServiceCostDelta:
    """Yesterday vs. day-before-yesterday change for one service."""

    service_name: str
    current_cost: float
    previous_cost: float
    delta: CostDelta


@dataclass(frozen=True)
class PeriodTotals:
    """Total cost of a period and the period before it."""

    current: float
    previous: float
    delta: CostDelta


@dataclass(frozen=True)
class DeltaTotals:
    yesterday: PeriodTotals
    last_7_days: PeriodTotals
    this_month: PeriodTotals


@dataclass(frozen=True)
class DeltaInsights:
    volatility_score: float  # 0-100, higher = less stable
    anomaly_detected: bool
    significant_changes: tuple[str, ...]


@dataclass(frozen=True)
class CostDeltaAnalysis:
    """Result of ``analyze_cost_delta``."""

    totals: DeltaTotals
    service_deltas: tuple[ServiceCostDelta, ...]
    top_increases: tuple[ServiceCostDelta, ...]
    top_decreases: tuple[ServiceCostDelta, ...]
    insights: DeltaInsights

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable representation for presentation layers."""
        return asdict(self)


@dataclass(frozen=True)
class DeltaWindows:
    """
    Calendar windows anchored on one UTC day.

    All bounds are inclusive UTC dates.
    """

    today: date
    yesterday: date
    day_before_yesterday: date
    last_7_days: tuple[date, date]
    previous_7_days: tuple[date, date]
    this_month: tuple[date, date]
    last_month: tuple[date, date]

    @classmethod
    def anchored_on(cls, now: datetime | date | str | None = None) -> DeltaWindows:
        """Build the windows for ``now`` (current UTC time by default)."""
        today = to_utc_date(now) if now is not None else datetime.now(UTC).date()
        this_month_start = today.replace(day=1)
        last_month_end = this_month_start - timedelta(days=1)

        return cls(
            today=today,
            yesterday=today - timedelta(days=1),
            day_before_yesterday=today - timedelta(days=2),
            # Trailing week stops short of yesterday
            last_7_days=(today - timedelta(days=7), today - timedelta(days=2)),
            previous_7_days=(today - timedelta(days=14), today - timedelta(days=8)),
            this_month=(this_month_start, today),
            last_month=(last_month_end.replace(day=1), last_month_end),
        )


def calculate_delta(current: float, previous: float) -> CostDelta:
    """
    Calculate the delta between two cost values.

    The percentage is relative to ``previous``; a zero previous value gives
    100% when ``current`` is positive and 0% otherwise. Changes under 1% are
    reported as stable.
    """
    absolute = current - previous

    if previous == 0:
        percentage = 100.0 if current > 0 else 0.0
    else:
        percentage = (current - previous) / previous * 100

    trend: Trend
    if abs(percentage) < 1:
        trend = "stable"
    elif absolute > 0:
        trend = "increasing"
    else:
        trend = "decreasing"

    return CostDelta(absolute=absolute, percentage=percentage, trend=trend)


def calculate_volatility_score(
    service_deltas: list[ServiceCostDelta] | tuple[ServiceCostDelta, ...],
    reference_std: float = 20.0,
) -> float:
    """
    Score (0-100) from the spread of per-service percentage changes.

    A population standard deviation of ``reference_std`` percentage points
    maps to 50. Non-finite percentages are ignored.
    """
    percentages = finite_values(s.delta.percentage for s in service_deltas)
    if not percentages:
        return 0.0

    return min(100.0, std_dev(percentages) / reference_std * 50)


def _in_range(day: date, bounds: tuple[date, date]) -> bool:
    return bounds[0] <= day <= bounds[1]


def _to_cost(value: float | str) -> float:
    return float(value) if isinstance(value, str) else value


def analyze_cost_delta(
    service_costs: ServiceCosts,
    config: DeltaAnalysisConfig | None = None,
    now: datetime | date | str | None = None,
) -> CostDeltaAnalysis:
    """
    Compare cost periods across all services.

    Windows are computed in UTC to line up with provider billing days:
    yesterday vs. the day before, the trailing week (excluding yesterday)
    vs. the week before it, and this month to date vs. last month.

    Args:
        service_costs: Daily costs per service, ``{service: {day: cost}}``.
                       Days may be ISO strings, dates or datetimes.
        config: Delta analysis options.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        CostDeltaAnalysis with totals, per-service deltas and insights.
    """
    config = config or DeltaAnalysisConfig()
    windows = DeltaWindows.anchored_on(now)

    yesterday_cost = 0.0
    day_before_cost = 0.0
    last_7_days_cost = 0.0
    previous_7_days_cost = 0.0
    this_month_cost = 0.0
    last_month_cost = 0.0

    service_deltas: list[ServiceCostDelta] = []

    for service_name, daily_costs in service_costs.items():
        service_yesterday = 0.0
        service_day_before = 0.0

        for day_key, raw_cost in daily_costs.items():
            cost = _to_cost(raw_cost)
            if not math.isfinite(cost):
                continue
            day = to_utc_date(day_key)

            if day == windows.yesterday:
                yesterday_cost += cost
                service_yesterday += cost
            if day == windows.day_before_yesterday:
                day_before_cost += cost
                service_day_before += cost
            if _in_range(day, windows.last_7_days):
                last_7_days_cost += cost
            if _in_range(day, windows.previous_7_days):
                previous_7_days_cost += cost
            if _in_range(day, windows.this_month):
                this_month_cost += cost
            if _in_range(day, windows.last_month):
                last_month_cost += cost

        if config.include_zero_cost or service_yesterday != 0 or service_day_before != 0:
            service_deltas.append(
                ServiceCostDelta(
                    service_name=service_name,
                    current_cost=service_yesterday,
                    previous_cost=service_day_before,
                    delta=calculate_delta(service_yesterday, service_day_before),
                )
            )

    by_magnitude = sorted(service_deltas, key=lambda s: abs(s.delta.absolute), reverse=True)
    top_increases = [s for s in by_magnitude if s.delta.absolute > 0][: config.top_n]
    top_decreases = [s for s in by_magnitude if s.delta.absolute < 0][: config.top_n]

    significant_changes = []
    for service in service_deltas:
        percentage = service.delta.percentage
        if math.isfinite(percentage) and abs(percentage) >= config.significant_change_threshold:
            direction = "increased" if service.delta.absolute > 0 else "decreased"
            significant_changes.append(
                f"{service.service_name} {direction} by {abs(percentage):.1f}%"
            )

    yesterday_delta = calculate_delta(yesterday_cost, day_before_cost)

    logger.debug(
        f"Delta analysis for {windows.today.isoformat()}: {len(service_deltas)} services, "
        f"yesterday {yesterday_delta.percentage:+.1f}%"
    )

    return CostDeltaAnalysis(
        totals=DeltaTotals(
            yesterday=PeriodTotals(yesterday_cost, day_before_cost, yesterday_delta),
            last_7_days=PeriodTotals(
                last_7_days_cost,
                previous_7_days_cost,
                calculate_delta(last_7_days_cost, previous_7_days_cost),
            ),
            this_month=PeriodTotals(
                this_month_cost,
                last_month_cost,
                calculate_delta(this_month_cost, last_month_cost),
            ),
        ),
        service_deltas=tuple(service_deltas),
        top_increases=tuple(top_increases),
        top_decreases=tuple(top_decreases),
        insights=DeltaInsights(
            volatility_score=calculate_volatility_score(
                service_deltas, config.volatility_reference_std
            ),
            anomaly_detected=abs(yesterday_delta.percentage) > config.anomaly_threshold,
            significant_changes=tuple(significant_changes[: config.max_significant_changes]),
        ),
    )


def enhance_costs_with_delta(
    totals: Mapping[str, Any],
    service_costs: ServiceCosts,
    config: DeltaAnalysisConfig | None = None,
    now: datetime | date | str | None = None,
) -> dict[str, Any]:
    """Copy of a collaborator's totals with the delta analysis under ``"delta"``."""
    return {**totals, "delta": analyze_cost_delta(service_costs, config, now)}
