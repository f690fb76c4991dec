"""Pytest configuration and fixtures."""

import pytest
from datetime import date, datetime, timedelta

from cloud_cost_analytics.models import DataPoint

START = datetime(2024, 1, 1)


def make_series(values: list[float], start: datetime = START) -> list[DataPoint]:
    """Build a daily series starting at ``start``."""
    return [
        DataPoint(timestamp=start + timedelta(days=i), value=value)
        for i, value in enumerate(values)
    ]


@pytest.fixture
def flat_series_with_spike():
    """20 days at $100 followed by one day at $300."""
    return make_series([100.0] * 20 + [300.0])


@pytest.fixture
def reference_day():
    """Fixed 'today' for delta analysis (UTC)."""
    return date(2024, 3, 15)


@pytest.fixture
def sample_service_costs(reference_day):
    """Daily costs per service around the reference day."""
    yesterday = reference_day - timedelta(days=1)
    day_before = reference_day - timedelta(days=2)
    return {
        "Amazon EC2": {
            yesterday.isoformat(): 150.0,
            day_before.isoformat(): 100.0,
        },
        "Amazon RDS": {
            yesterday.isoformat(): 40.0,
            day_before.isoformat(): 50.0,
        },
        "AWS Lambda": {
            yesterday.isoformat(): 10.0,
            day_before.isoformat(): 10.05,
        },
        "Amazon S3": {
            yesterday.isoformat(): 0.0,
            day_before.isoformat(): 0.0,
        },
    }


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary."""
    return {
        "project_name": "test-analytics",
        "environment": "dev",
        "anomaly_detection": {
            "sensitivity": "HIGH",
            "lookback_periods": 10,
            "seasonality_periods": 7,
            "thresholds": {
                "z_score": {"high": 2.0, "medium": 3.0, "low": 4.0},
            },
        },
        "delta_analysis": {
            "top_n": 3,
            "significant_change_threshold": 15,
        },
    }
