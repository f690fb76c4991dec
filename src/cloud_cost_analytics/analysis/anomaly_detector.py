"""Anomaly detection for cost time series."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Literal

from cloud_cost_analytics.analysis.stats import (
    linear_trend,
    mean_absolute_deviation,
    median,
    median_absolute_deviation,
)
from cloud_cost_analytics.config.schema import AnomalyDetectionConfig, SeverityRatios
from cloud_cost_analytics.models import DataPoint, ensure_ordered, to_series

logger = logging.getLogger(__name__)

Severity = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
AnomalyType = Literal["SPIKE", "DROP", "TREND_CHANGE", "SEASONAL_ANOMALY"]

SEVERITY_ORDER: dict[str, int] = {"LOW": 1, "MEDIUM": 2, "HIGH": 3, "CRITICAL": 4}

# Consistency constant relating MAD to the standard deviation of a normal distribution
MODIFIED_Z_FACTOR = 0.6745
# Same, for the mean absolute deviation
MEAN_AD_FACTOR = 1.253314

BASE_CAUSES: dict[str, tuple[str, ...]] = {
    "SPIKE": (
        "Increased resource usage or traffic",
        "New service deployments or scaling events",
        "Data transfer spikes or storage usage increases",
    ),
    "DROP": (
        "Reduced usage or traffic patterns",
        "Service shutdowns or downscaling",
        "Resource optimization implementations",
    ),
    "TREND_CHANGE": (
        "Business growth or contraction",
        "Architectural changes or migrations",
        "New feature rollouts or service changes",
        "Seasonal business pattern shifts",
    ),
    "SEASONAL_ANOMALY": (
        "Unusual business events or promotions",
        "Holiday pattern deviations",
        "Market or economic factors",
        "Competitor actions or market changes",
    ),
}

ESCALATED_CAUSES: dict[str, tuple[str, ...]] = {
    "SPIKE": (
        "Potential security incident or DDoS attack",
        "Misconfigured auto-scaling rules",
    ),
    "DROP": (
        "Service outages or failures",
        "Billing or account issues",
    ),
}


@dataclass(frozen=True)
class Anomaly:
    """A detected anomaly at a single point of a series."""

    timestamp: datetime
    actual_value: float
    expected_value: float
    deviation: float  # Always >= 0
    deviation_percentage: float  # Always >= 0
    severity: Severity
    confidence: float  # 0-100
    type: AnomalyType
    description: str
    potential_causes: tuple[str, ...] = ()
    affected_services: tuple[str, ...] = ()

    @property
    def is_increase(self) -> bool:
        return self.actual_value > self.expected_value

    def with_services(self, *services: str) -> Anomaly:
        """Copy of this anomaly attributed to the given services."""
        return replace(self, affected_services=tuple(services))

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable representation for presentation layers."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["potential_causes"] = list(self.potential_causes)
        data["affected_services"] = list(self.affected_services)
        return data


def calculate_severity(
    score: float,
    threshold: float,
    ratios: SeverityRatios | None = None,
) -> Severity:
    """Map a raw score to a severity tier by its ratio to the threshold."""
    ratios = ratios or SeverityRatios()
    ratio = score / threshold
    if ratio > ratios.critical:
        return "CRITICAL"
    if ratio > ratios.high:
        return "HIGH"
    if ratio > ratios.medium:
        return "MEDIUM"
    return "LOW"


def generate_potential_causes(
    anomaly_type: AnomalyType,
    deviation_percentage: float,
    escalation_percent: float = 50.0,
) -> tuple[str, ...]:
    """
    Plausible causes for an anomaly.

    Base causes for the type are always present; spikes and drops larger than
    ``escalation_percent`` also get the escalated hypotheses.
    """
    causes = BASE_CAUSES.get(anomaly_type, ())
    if deviation_percentage > escalation_percent:
        causes += ESCALATED_CAUSES.get(anomaly_type, ())
    return causes


def describe_anomaly(kind: str, deviation: float, deviation_percentage: float) -> str:
    """Human-readable description of a point anomaly."""
    direction = "increase" if deviation > 0 else "decrease"
    if deviation_percentage > 100:
        magnitude = "massive"
    elif deviation_percentage > 50:
        magnitude = "significant"
    elif deviation_percentage > 25:
        magnitude = "notable"
    else:
        magnitude = "minor"

    return f"{kind} anomaly detected: {magnitude} {direction} of {deviation_percentage:.1f}%"


def modified_z_score(
    value: float,
    window: Sequence[float],
    center: float,
    min_fallback_percent: float = 0.0,
) -> float:
    """
    Robust z-score of ``value`` against ``window``.

    Uses 0.6745 * (x - median) / MAD. When the MAD is zero (more than half the
    window shares one value) the mean absolute deviation is used instead. When
    that is zero too the window is perfectly flat: any departure from it scores
    infinite, and a value equal to it scores 0.

    The fallbacks only apply to moves of at least ``min_fallback_percent`` of
    the median; smaller moves against a zero-MAD window score 0.
    """
    mad = median_absolute_deviation(window, center)
    if mad > 0:
        return MODIFIED_Z_FACTOR * (value - center) / mad

    if center != 0 and abs(value - center) / abs(center) * 100 < min_fallback_percent:
        return 0.0

    mean_ad = mean_absolute_deviation(window, center)
    if mean_ad > 0:
        return (value - center) / (MEAN_AD_FACTOR * mean_ad)

    if value == center:
        return 0.0
    return math.copysign(math.inf, value - center)


def detect_statistical_anomalies(
    series: Sequence[DataPoint],
    config: AnomalyDetectionConfig,
) -> list[Anomaly]:
    """Point anomalies by modified z-score over a trailing lookback window."""
    anomalies: list[Anomaly] = []
    values = [p.value for p in series]
    lookback = config.lookback_periods
    threshold = config.z_score_threshold
    thresholds = config.thresholds

    for i in range(lookback, len(values)):
        current = values[i]
        window = values[i - lookback:i]
        center = median(window)
        score = abs(
            modified_z_score(current, window, center, thresholds.flat_window_min_percent)
        )

        if score <= threshold:
            continue

        signed_deviation = current - center
        deviation = abs(signed_deviation)
        deviation_percentage = abs(deviation / center) * 100 if center != 0 else 0.0
        anomaly_type: AnomalyType = "SPIKE" if signed_deviation > 0 else "DROP"

        anomalies.append(
            Anomaly(
                timestamp=series[i].timestamp,
                actual_value=current,
                expected_value=center,
                deviation=deviation,
                deviation_percentage=deviation_percentage,
                severity=calculate_severity(score, threshold, thresholds.severity_ratios),
                confidence=min(thresholds.confidence_caps.statistical, score / threshold * 100),
                type=anomaly_type,
                description=describe_anomaly("Statistical", signed_deviation, deviation_percentage),
                potential_causes=generate_potential_causes(
                    anomaly_type, deviation_percentage, thresholds.escalation_percent
                ),
            )
        )

    return anomalies


def detect_trend_anomalies(
    series: Sequence[DataPoint],
    config: AnomalyDetectionConfig,
) -> list[Anomaly]:
    """Shifts in the linear trend between two adjacent windows."""
    thresholds = config.thresholds
    window = min(thresholds.max_trend_window, config.lookback_periods // 2)
    if window < 2:
        logger.debug(f"Trend pass skipped: window of {window} is too small for a slope")
        return []

    anomalies: list[Anomaly] = []
    values = [p.value for p in series]
    threshold = config.trend_change_threshold

    for i in range(window * 2, len(values)):
        recent_slope = linear_trend(values[i - window:i])
        prior_slope = linear_trend(values[i - window * 2:i - window])
        trend_change = abs(recent_slope - prior_slope)

        if trend_change <= threshold:
            continue

        current = values[i]
        expected = values[i - 1] + prior_slope
        deviation = abs(current - expected)
        deviation_percentage = deviation / abs(expected) * 100 if expected != 0 else 0.0
        shift = "acceleration" if recent_slope > prior_slope else "deceleration"

        anomalies.append(
            Anomaly(
                timestamp=series[i].timestamp,
                actual_value=current,
                expected_value=expected,
                deviation=deviation,
                deviation_percentage=deviation_percentage,
                severity=calculate_severity(trend_change, threshold, thresholds.severity_ratios),
                confidence=min(thresholds.confidence_caps.trend, trend_change / threshold * 100),
                type="TREND_CHANGE",
                description=f"Significant trend change detected: {shift} in cost growth",
                potential_causes=generate_potential_causes(
                    "TREND_CHANGE", deviation_percentage, thresholds.escalation_percent
                ),
            )
        )

    return anomalies


def detect_seasonal_anomalies(
    series: Sequence[DataPoint],
    config: AnomalyDetectionConfig,
) -> list[Anomaly]:
    """Deviations from the same phase one seasonal cycle earlier."""
    period = config.seasonality_periods
    if not period or len(series) < period * 2:
        return []

    anomalies: list[Anomaly] = []
    values = [p.value for p in series]
    thresholds = config.thresholds

    for i in range(period, len(values)):
        current = values[i]
        baseline = values[i - period]
        deviation = abs(current - baseline)
        deviation_percentage = deviation / abs(baseline) * 100 if baseline != 0 else 0.0

        if deviation <= abs(baseline) * thresholds.seasonal_baseline_fraction:
            continue
        if deviation_percentage <= thresholds.seasonal_percent:
            continue

        anomalies.append(
            Anomaly(
                timestamp=series[i].timestamp,
                actual_value=current,
                expected_value=baseline,
                deviation=deviation,
                deviation_percentage=deviation_percentage,
                severity=calculate_severity(
                    deviation_percentage, thresholds.seasonal_percent, thresholds.severity_ratios
                ),
                confidence=thresholds.confidence_caps.seasonal,
                type="SEASONAL_ANOMALY",
                description=(
                    f"Unusual seasonal pattern: {deviation_percentage:.1f}% deviation "
                    "from same period last cycle"
                ),
                potential_causes=generate_potential_causes(
                    "SEASONAL_ANOMALY", deviation_percentage, thresholds.escalation_percent
                ),
            )
        )

    return anomalies


def consolidate_anomalies(anomalies: Iterable[Anomaly]) -> list[Anomaly]:
    """
    Keep one anomaly per timestamp.

    Within a timestamp the highest severity wins, then the highest confidence;
    on a full tie the first emitted anomaly is kept. Survivors are returned in
    ascending timestamp order.
    """
    grouped: dict[datetime, list[Anomaly]] = {}
    for anomaly in anomalies:
        grouped.setdefault(anomaly.timestamp, []).append(anomaly)

    survivors = [
        max(group, key=lambda a: (SEVERITY_ORDER[a.severity], a.confidence))
        for group in grouped.values()
    ]
    return sorted(survivors, key=lambda a: a.timestamp)


def detect_anomalies(
    series: Sequence[DataPoint] | Iterable[Any],
    config: AnomalyDetectionConfig | None = None,
) -> list[Anomaly]:
    """
    Run every detection pass over a series and consolidate the results.

    Points with NaN or infinite values are dropped before the passes run.

    Args:
        series: Points ordered ascending by timestamp, or anything
                ``to_series`` accepts.
        config: Detector configuration. Defaults to MEDIUM sensitivity with a
                14 period lookback.

    Returns:
        At most one anomaly per timestamp, sorted by timestamp. Empty when the
        series is shorter than the lookback window.

    Raises:
        SeriesOrderError: If ``config.validate_series`` is set and timestamps
                          are not strictly ascending.
    """
    config = config or AnomalyDetectionConfig()
    points = to_series(series)

    if config.validate_series:
        ensure_ordered(points)

    if config.exclude_weekends:
        points = [p for p in points if not p.is_weekend]

    finite = [p for p in points if math.isfinite(p.value)]
    if len(finite) < len(points):
        logger.debug(f"Dropped {len(points) - len(finite)} non-finite points")
        points = finite

    if len(points) < config.lookback_periods:
        logger.debug(
            f"Insufficient history: {len(points)} points < lookback {config.lookback_periods}"
        )
        return []

    statistical = detect_statistical_anomalies(points, config)
    trend = detect_trend_anomalies(points, config)
    seasonal = detect_seasonal_anomalies(points, config)

    logger.debug(
        f"Detection passes over {len(points)} points: {len(statistical)} statistical, "
        f"{len(trend)} trend, {len(seasonal)} seasonal"
    )

    return consolidate_anomalies([*statistical, *trend, *seasonal])


class AnomalyDetector:
    """
    Detect cost anomalies using multiple statistical methods.

    Detection strategies:
    1. Modified z-score - point deviates from the trailing median by too many MADs
    2. Trend shift - slope of recent window differs from the preceding window
    3. Seasonal deviation - point differs from the same phase one cycle earlier

    The detector only holds its (frozen) configuration, so one instance can
    be shared between threads.
    """

    def __init__(self, config: AnomalyDetectionConfig | None = None):
        """
        Initialize the anomaly detector.

        Args:
            config: Anomaly detection configuration.
        """
        self.config = config or AnomalyDetectionConfig()

    def detect_anomalies(self, series: Sequence[DataPoint] | Iterable[Any]) -> list[Anomaly]:
        """Detect anomalies in a series ordered ascending by timestamp."""
        return detect_anomalies(series, self.config)
