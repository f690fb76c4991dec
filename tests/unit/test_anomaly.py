"""Tests for anomaly detection module."""

import math

import pytest
from datetime import UTC, datetime, timedelta

from cloud_cost_analytics.analysis.anomaly_detector import (
    Anomaly,
    AnomalyDetector,
    calculate_severity,
    consolidate_anomalies,
    detect_anomalies,
    detect_seasonal_anomalies,
    detect_trend_anomalies,
    generate_potential_causes,
    modified_z_score,
)
from cloud_cost_analytics.config.schema import AnomalyDetectionConfig, DetectionThresholds
from cloud_cost_analytics.exceptions import SeriesOrderError
from cloud_cost_analytics.models import DataPoint

START = datetime(2024, 1, 1)  # A Monday


def create_series(values: list[float]) -> list[DataPoint]:
    """Helper to create a daily test series."""
    return [
        DataPoint(timestamp=START + timedelta(days=i), value=value)
        for i, value in enumerate(values)
    ]


def create_anomaly(day: int, severity: str, confidence: float, anomaly_type: str) -> Anomaly:
    """Helper to create an anomaly on a given day."""
    return Anomaly(
        timestamp=datetime(2024, 1, 1 + day, tzinfo=UTC),
        actual_value=200.0,
        expected_value=100.0,
        deviation=100.0,
        deviation_percentage=100.0,
        severity=severity,
        confidence=confidence,
        type=anomaly_type,
        description="test",
    )


def alternating(count: int) -> list[float]:
    """100, 102, 100, 102, ... (median 101, MAD 1)."""
    return [100.0 if i % 2 == 0 else 102.0 for i in range(count)]


class TestDetectAnomalies:
    """Tests for the combined detector."""

    def test_insufficient_history_returns_empty(self):
        """Test that a series shorter than the lookback is not an error."""
        config = AnomalyDetectionConfig(lookback_periods=14)
        assert detect_anomalies(create_series([100.0] * 13), config) == []
        assert detect_anomalies([], config) == []

    def test_spike_after_flat_history(self, flat_series_with_spike):
        """Test that a single spike after a flat baseline is reported once."""
        config = AnomalyDetectionConfig(sensitivity="MEDIUM", lookback_periods=14)
        anomalies = detect_anomalies(flat_series_with_spike, config)

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.type == "SPIKE"
        assert anomaly.timestamp == flat_series_with_spike[-1].timestamp
        assert anomaly.expected_value == pytest.approx(100.0)
        assert anomaly.actual_value == 300.0
        assert anomaly.deviation == pytest.approx(200.0)
        assert anomaly.deviation_percentage == pytest.approx(200.0)
        assert anomaly.severity == "CRITICAL"
        assert anomaly.confidence == 95

    def test_drop_after_flat_history(self):
        """Test that a sharp drop is typed DROP with outage hypotheses."""
        config = AnomalyDetectionConfig(lookback_periods=14)
        anomalies = detect_anomalies(create_series([100.0] * 20 + [20.0]), config)

        assert len(anomalies) == 1
        assert anomalies[0].type == "DROP"
        assert anomalies[0].deviation == pytest.approx(80.0)
        assert "Service outages or failures" in anomalies[0].potential_causes

    def test_flat_series_has_no_anomalies(self):
        """Test that a constant series is quiet."""
        config = AnomalyDetectionConfig(lookback_periods=14, seasonality_periods=7)
        assert detect_anomalies(create_series([50.0] * 30), config) == []

    def test_small_step_on_flat_series_is_quiet(self):
        """Test that a sub-1% move off a flat baseline is not reported."""
        config = AnomalyDetectionConfig(sensitivity="MEDIUM", lookback_periods=14)
        series = create_series([100.0] * 20 + [100.01] * 10)

        assert detect_anomalies(series, config) == []

    def test_flat_window_floor_is_configurable(self):
        """Test that the minimum move against a flat window can be lowered."""
        series = create_series([100.0] * 20 + [110.0])

        assert detect_anomalies(series, AnomalyDetectionConfig()) == []

        config = AnomalyDetectionConfig(
            thresholds=DetectionThresholds(flat_window_min_percent=5.0)
        )
        anomalies = detect_anomalies(series, config)

        assert len(anomalies) == 1
        assert anomalies[0].type == "SPIKE"
        assert anomalies[0].deviation_percentage == pytest.approx(10.0)

    def test_nan_points_dropped(self):
        """Test that a NaN cost never surfaces as an anomaly."""
        values = alternating(30)
        values[20] = float("nan")
        series = create_series(values)
        config = AnomalyDetectionConfig(lookback_periods=14, seasonality_periods=7)

        anomalies = detect_anomalies(series, config)

        assert series[20].timestamp not in {a.timestamp for a in anomalies}
        for anomaly in anomalies:
            assert math.isfinite(anomaly.deviation)
            assert anomaly.deviation >= 0
            assert math.isfinite(anomaly.expected_value)

    def test_infinite_points_dropped(self):
        """Test that infinite costs are ignored rather than reported."""
        values = [100.0] * 20
        values[10] = float("inf")
        values[15] = float("-inf")
        config = AnomalyDetectionConfig(lookback_periods=14, seasonality_periods=7)

        assert detect_anomalies(create_series(values), config) == []

    def test_non_finite_points_count_against_history(self):
        """Test that the length check applies after non-finite points are dropped."""
        values = [100.0] * 13 + [float("nan")] * 3
        config = AnomalyDetectionConfig(lookback_periods=14)

        assert detect_anomalies(create_series(values), config) == []

    def test_sensitivity_controls_point_threshold(self):
        """Test that a modest deviation only fires at HIGH sensitivity."""
        series = create_series(alternating(20) + [105.0])  # z = 0.6745 * 4 / 1

        high = detect_anomalies(series, AnomalyDetectionConfig(sensitivity="HIGH"))
        medium = detect_anomalies(series, AnomalyDetectionConfig(sensitivity="MEDIUM"))

        assert len(high) == 1
        assert high[0].type == "SPIKE"
        assert high[0].expected_value == pytest.approx(101.0)
        assert high[0].severity == "LOW"
        assert medium == []

    def test_weekends_excluded(self):
        """Test that weekend points are dropped before detection."""
        values = [100.0] * 21
        values[19] = 500.0  # Saturday 2024-01-20
        series = create_series(values)

        with_weekends = detect_anomalies(series, AnomalyDetectionConfig())
        assert series[19].timestamp in {a.timestamp for a in with_weekends}

        without_weekends = detect_anomalies(
            series, AnomalyDetectionConfig(exclude_weekends=True)
        )
        assert without_weekends == []

    def test_unordered_series_rejected(self):
        """Test that out-of-order timestamps raise."""
        series = create_series([100.0] * 15)
        series[3], series[4] = series[4], series[3]

        with pytest.raises(SeriesOrderError):
            detect_anomalies(series, AnomalyDetectionConfig())

    def test_duplicate_timestamps_rejected(self):
        """Test that duplicate timestamps raise."""
        series = create_series([100.0] * 15)
        series[5] = DataPoint(timestamp=series[4].timestamp, value=100.0)

        with pytest.raises(SeriesOrderError, match="duplicate"):
            detect_anomalies(series, AnomalyDetectionConfig())

    def test_validation_can_be_disabled(self):
        """Test that the order check is skipped when disabled."""
        series = create_series([100.0] * 15)
        series[3], series[4] = series[4], series[3]

        config = AnomalyDetectionConfig(validate_series=False)
        assert detect_anomalies(series, config) == []

    def test_deterministic(self):
        """Test that repeated runs give identical output."""
        config = AnomalyDetectionConfig(sensitivity="HIGH", seasonality_periods=7)
        series = create_series(alternating(20) + [110.0, 95.0, 130.0, 101.0, 140.0])

        first = detect_anomalies(series, config)
        second = detect_anomalies(series, config)

        assert first == second
        assert [a.to_dict() for a in first] == [a.to_dict() for a in second]

    def test_accepts_raw_points(self):
        """Test that dicts with ISO timestamps are accepted."""
        points = [
            {"timestamp": f"2024-01-{day:02d}", "value": 100.0} for day in range(1, 21)
        ]
        points.append({"timestamp": "2024-01-21", "value": 400.0})

        anomalies = detect_anomalies(points, AnomalyDetectionConfig())
        assert len(anomalies) == 1
        assert anomalies[0].timestamp.isoformat() == "2024-01-21T00:00:00+00:00"


class TestModifiedZScore:
    """Tests for modified_z_score."""

    def test_uses_mad(self):
        window = alternating(14)  # median 101, MAD 1
        assert modified_z_score(105.0, window, 101.0) == pytest.approx(0.6745 * 4)

    def test_flat_window_departure_is_infinite(self):
        assert modified_z_score(300.0, [100.0] * 14, 100.0, 25.0) == math.inf
        assert modified_z_score(20.0, [100.0] * 14, 100.0, 25.0) == -math.inf

    def test_flat_window_immaterial_move_scores_zero(self):
        assert modified_z_score(100.01, [100.0] * 14, 100.0, 25.0) == 0.0

    def test_zero_baseline_move_is_material(self):
        assert modified_z_score(1.0, [0.0] * 14, 0.0, 25.0) == math.inf


class TestTrendAnomalies:
    """Tests for the trend-shift pass."""

    def test_ramp_after_flat_period(self):
        """Test that a ramp starting after a flat period is a trend change."""
        values = [100.0] * 14 + [105.0, 110.0, 115.0, 120.0]
        series = create_series(values)
        config = AnomalyDetectionConfig(sensitivity="MEDIUM", lookback_periods=14)

        anomalies = detect_trend_anomalies(series, config)

        first = anomalies[0]
        assert first.timestamp == series[15].timestamp
        assert first.type == "TREND_CHANGE"
        assert first.expected_value == pytest.approx(105.0)  # previous value + prior slope 0
        assert first.deviation == pytest.approx(5.0)
        assert first.severity == "HIGH"  # slope change 0.536 vs threshold 0.2
        assert first.confidence == 90
        assert "acceleration" in first.description

    def test_small_lookback_skips_trend_pass(self):
        """Test that a window too small for a slope skips the pass."""
        config = AnomalyDetectionConfig(lookback_periods=3)
        assert detect_trend_anomalies(create_series([1.0, 5.0, 2.0, 9.0, 3.0]), config) == []


class TestSeasonalAnomalies:
    """Tests for the seasonal-deviation pass."""

    def test_deviation_from_previous_cycle(self):
        """Test that a point 50% above the prior cycle is flagged."""
        values = [100.0] * 14
        values[10] = 150.0
        series = create_series(values)
        config = AnomalyDetectionConfig(lookback_periods=7, seasonality_periods=7)

        anomalies = detect_seasonal_anomalies(series, config)

        assert len(anomalies) == 1
        assert anomalies[0].timestamp == series[10].timestamp
        assert anomalies[0].expected_value == 100.0
        assert anomalies[0].deviation_percentage == pytest.approx(50.0)
        assert anomalies[0].severity == "MEDIUM"
        assert anomalies[0].confidence == 80

    def test_small_deviation_ignored(self):
        """Test that a 20% deviation is below the seasonal thresholds."""
        values = [100.0] * 14
        values[10] = 120.0
        config = AnomalyDetectionConfig(lookback_periods=7, seasonality_periods=7)

        assert detect_seasonal_anomalies(create_series(values), config) == []

    def test_requires_two_cycles(self):
        """Test that the pass needs at least two full cycles."""
        config = AnomalyDetectionConfig(lookback_periods=7, seasonality_periods=7)
        assert detect_seasonal_anomalies(create_series([100.0] * 13), config) == []

    def test_disabled_without_period(self):
        """Test that the pass is off when no seasonality is configured."""
        values = [100.0] * 14
        values[10] = 300.0
        assert detect_seasonal_anomalies(create_series(values), AnomalyDetectionConfig()) == []


class TestConsolidation:
    """Tests for consolidate_anomalies."""

    def test_highest_severity_wins(self):
        """Test that a CRITICAL trend change beats a HIGH point anomaly."""
        point = create_anomaly(3, "HIGH", 95, "SPIKE")
        trend = create_anomaly(3, "CRITICAL", 90, "TREND_CHANGE")

        result = consolidate_anomalies([point, trend])

        assert result == [trend]

    def test_confidence_breaks_ties(self):
        """Test that equal severities fall back to confidence."""
        low_confidence = create_anomaly(2, "MEDIUM", 60, "SPIKE")
        high_confidence = create_anomaly(2, "MEDIUM", 80, "SEASONAL_ANOMALY")

        assert consolidate_anomalies([low_confidence, high_confidence]) == [high_confidence]

    def test_sorted_by_timestamp(self):
        """Test that survivors come back in ascending time order."""
        later = create_anomaly(5, "LOW", 50, "DROP")
        earlier = create_anomaly(1, "LOW", 50, "SPIKE")

        assert consolidate_anomalies([later, earlier]) == [earlier, later]


class TestSeverityAndCauses:
    """Tests for severity tiers and cause generation."""

    @pytest.mark.parametrize(
        "score,expected",
        [(3.1, "CRITICAL"), (2.5, "HIGH"), (2.0, "MEDIUM"), (1.6, "MEDIUM"), (1.5, "LOW")],
    )
    def test_severity_tiers(self, score, expected):
        assert calculate_severity(score, 1.0) == expected

    def test_base_causes_only(self):
        causes = generate_potential_causes("SPIKE", 30)
        assert len(causes) == 3
        assert "Increased resource usage or traffic" in causes

    def test_escalated_causes(self):
        causes = generate_potential_causes("SPIKE", 60)
        assert len(causes) == 5
        assert "Potential security incident or DDoS attack" in causes

    def test_trend_causes_not_escalated(self):
        assert len(generate_potential_causes("TREND_CHANGE", 90)) == 4


class TestAnomalyDetector:
    """Tests for the AnomalyDetector wrapper."""

    def test_default_config(self):
        detector = AnomalyDetector()
        assert detector.config.sensitivity == "MEDIUM"
        assert detector.config.lookback_periods == 14

    def test_detects_with_own_config(self, flat_series_with_spike):
        detector = AnomalyDetector(AnomalyDetectionConfig(lookback_periods=21))
        assert detector.detect_anomalies(flat_series_with_spike) == []

    def test_to_dict(self, flat_series_with_spike):
        anomaly = AnomalyDetector().detect_anomalies(flat_series_with_spike)[0]
        data = anomaly.to_dict()

        assert data["timestamp"] == "2024-01-21T00:00:00+00:00"
        assert data["type"] == "SPIKE"
        assert isinstance(data["potential_causes"], list)
        assert data["affected_services"] == []
