"""Run the detector over aggregate and per-service series and derive insights."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from cloud_cost_analytics.analysis.anomaly_detector import (
    SEVERITY_ORDER,
    Anomaly,
    AnomalyDetector,
)
from cloud_cost_analytics.analysis.stats import linear_trend, volatility
from cloud_cost_analytics.config.schema import AnomalyDetectionConfig, Config, InsightConfig
from cloud_cost_analytics.models import DataPoint, to_series

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalyticsReport:
    """Combined analytics for one provider."""

    provider: str
    analysis_date: datetime
    overall_anomalies: list[Anomaly]
    service_anomalies: dict[str, list[Anomaly]] = field(default_factory=dict)
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def all_anomalies(self) -> list[Anomaly]:
        anomalies = list(self.overall_anomalies)
        for service_anomalies in self.service_anomalies.values():
            anomalies.extend(service_anomalies)
        return anomalies

    @property
    def total_anomalies(self) -> int:
        return len(self.all_anomalies)

    @property
    def severity_counts(self) -> dict[str, int]:
        """Anomaly count per severity tier, most severe first."""
        ranked = sorted(SEVERITY_ORDER, key=SEVERITY_ORDER.get, reverse=True)
        counts = {severity: 0 for severity in ranked}
        for anomaly in self.all_anomalies:
            counts[anomaly.severity] += 1
        return counts

    @property
    def has_critical(self) -> bool:
        return any(a.severity == "CRITICAL" for a in self.all_anomalies)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable representation for presentation layers."""
        return {
            "provider": self.provider,
            "analysis_date": self.analysis_date.isoformat(),
            "overall_anomalies": [a.to_dict() for a in self.overall_anomalies],
            "service_anomalies": {
                service: [a.to_dict() for a in anomalies]
                for service, anomalies in self.service_anomalies.items()
            },
            "insights": list(self.insights),
            "recommendations": list(self.recommendations),
            "severity_counts": self.severity_counts,
        }


def _values(cost_data: Sequence[DataPoint]) -> list[float]:
    return [p.value for p in cost_data]


def _percent_change(latest: float, reference: float) -> float:
    return (latest - reference) / reference * 100 if reference > 0 else 0.0


def generate_insights(
    cost_data: Sequence[DataPoint],
    config: InsightConfig | None = None,
) -> list[str]:
    """
    Narrative observations about an aggregate cost series.

    Compares the latest point with the one a week back and the one a month
    back (or the first point for shorter series), and flags high volatility.
    Series shorter than ``config.min_points`` yield no insights.
    """
    config = config or InsightConfig()
    values = _values(cost_data)
    insights: list[str] = []

    if len(values) < config.min_points:
        return insights

    latest = values[-1]
    week_ago = values[-7]
    month_ago = values[-30] if len(values) > 30 else values[0]

    week_growth = _percent_change(latest, week_ago)
    month_growth = _percent_change(latest, month_ago)

    if abs(week_growth) > config.week_over_week_percent:
        direction = "increase" if week_growth > 0 else "decrease"
        insights.append(
            f"Significant week-over-week cost {direction} of {abs(week_growth):.1f}%"
        )

    if abs(month_growth) > config.month_over_month_percent:
        direction = "growth" if month_growth > 0 else "reduction"
        insights.append(
            f"Notable month-over-month cost {direction} of {abs(month_growth):.1f}%"
        )

    series_volatility = volatility(values)
    if series_volatility > config.volatility_caution:
        insights.append(
            f"High cost volatility detected ({series_volatility * 100:.1f}%) - "
            "consider investigating irregular spending patterns"
        )

    return insights


def generate_recommendations(
    cost_data: Sequence[DataPoint],
    config: InsightConfig | None = None,
) -> list[str]:
    """Template recommendations driven by volatility and the recent trend slope."""
    config = config or InsightConfig()
    values = _values(cost_data)
    recommendations: list[str] = []

    if volatility(values) > config.volatility_recommendation:
        recommendations.append(
            "Implement cost budgets and alerts to better track spending variations"
        )
        recommendations.append(
            "Consider using reserved instances or savings plans for more predictable costs"
        )

    if linear_trend(values[-config.trend_window:]) > config.trend_recommendation:
        recommendations.append(
            "Cost trend is increasing - review recent resource additions and scaling policies"
        )
        recommendations.append("Consider implementing automated cost optimization tools")

    return recommendations


class CostAnalyticsEngine:
    """
    Orchestrates anomaly detection and insight generation for a provider.

    Per-service series are independent, so with ``max_workers`` above 1 they
    are analysed concurrently, one series per worker. The engine holds only
    frozen configuration and can itself be shared between callers.
    """

    def __init__(
        self,
        config: AnomalyDetectionConfig | None = None,
        insight_config: InsightConfig | None = None,
        max_workers: int | None = None,
    ):
        """
        Initialize the analytics engine.

        Args:
            config: Anomaly detection configuration.
            insight_config: Thresholds for insights and recommendations.
            max_workers: Threads for per-service analysis. None or 1 runs
                         sequentially.
        """
        self.detector = AnomalyDetector(config)
        self.insight_config = insight_config or InsightConfig()
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config: Config) -> CostAnalyticsEngine:
        """Build an engine from a loaded root configuration."""
        return cls(
            config=config.anomaly_detection,
            insight_config=config.insights,
            max_workers=config.max_workers,
        )

    @property
    def config(self) -> AnomalyDetectionConfig:
        return self.detector.config

    def analyze_provider(
        self,
        provider: str,
        cost_data: Sequence[DataPoint] | Iterable[Any],
        service_data: Mapping[str, Sequence[DataPoint] | Iterable[Any]] | None = None,
        now: datetime | None = None,
    ) -> AnalyticsReport:
        """
        Analyse a provider's aggregate series and optional per-service series.

        Args:
            provider: Provider label carried into the report (e.g. "aws").
            cost_data: Aggregate daily cost series, ascending by timestamp.
            service_data: Optional per-service series keyed by service name.
            now: Analysis timestamp recorded in the report. Defaults to now (UTC).

        Returns:
            AnalyticsReport with anomalies, insights and recommendations.
        """
        series = to_series(cost_data)
        overall = self.detector.detect_anomalies(series)

        service_anomalies: dict[str, list[Anomaly]] = {}
        if service_data:
            service_anomalies = self.analyze_services(service_data)

        report = AnalyticsReport(
            provider=provider,
            analysis_date=now or datetime.now(UTC),
            overall_anomalies=overall,
            service_anomalies=service_anomalies,
            insights=generate_insights(series, self.insight_config),
            recommendations=generate_recommendations(series, self.insight_config),
        )

        logger.info(
            f"Analysed {provider}: {len(series)} points, {len(service_anomalies)} services, "
            f"{report.total_anomalies} anomalies"
        )
        return report

    def analyze_services(
        self,
        service_data: Mapping[str, Sequence[DataPoint] | Iterable[Any]],
    ) -> dict[str, list[Anomaly]]:
        """
        Detect anomalies in each service's series independently.

        Anomalies are attributed to their service via ``affected_services``.
        Results keep the input's service order.
        """
        services = list(service_data.keys())

        if self.max_workers and self.max_workers > 1 and len(services) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(
                    executor.map(self._analyze_service, services, service_data.values())
                )
        else:
            results = [
                self._analyze_service(service, data) for service, data in service_data.items()
            ]

        return dict(zip(services, results))

    def _analyze_service(
        self, service: str, data: Sequence[DataPoint] | Iterable[Any]
    ) -> list[Anomaly]:
        anomalies = self.detector.detect_anomalies(data)
        return [anomaly.with_services(service) for anomaly in anomalies]
