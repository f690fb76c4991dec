"""Configuration management for Cloud Cost Analytics."""

from cloud_cost_analytics.config.schema import (
    AnomalyDetectionConfig,
    Config,
    ConfidenceCaps,
    DeltaAnalysisConfig,
    DetectionThresholds,
    InsightConfig,
    Sensitivity,
    SensitivityTable,
    SeverityRatios,
)
from cloud_cost_analytics.config.loader import get_cached_config, load_config

__all__ = [
    "Config",
    "AnomalyDetectionConfig",
    "DetectionThresholds",
    "SensitivityTable",
    "SeverityRatios",
    "ConfidenceCaps",
    "DeltaAnalysisConfig",
    "InsightConfig",
    "Sensitivity",
    "load_config",
    "get_cached_config",
]
