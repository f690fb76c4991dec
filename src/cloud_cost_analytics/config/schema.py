"""Pydantic configuration schema for Cloud Cost Analytics."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Sensitivity = Literal["LOW", "MEDIUM", "HIGH"]


class _FrozenModel(BaseModel):
    """Configuration is immutable once constructed."""

    model_config = ConfigDict(frozen=True)


class SensitivityTable(_FrozenModel):
    """A threshold value per sensitivity level."""

    high: float = Field(gt=0)
    medium: float = Field(gt=0)
    low: float = Field(gt=0)

    def for_level(self, sensitivity: Sensitivity) -> float:
        """Look up the threshold for a sensitivity level."""
        return getattr(self, sensitivity.lower())


class SeverityRatios(_FrozenModel):
    """Score/threshold ratios above which each severity tier applies."""

    critical: float = Field(default=3.0, gt=0)
    high: float = Field(default=2.0, gt=0)
    medium: float = Field(default=1.5, gt=0)

    @model_validator(mode="after")
    def check_ordering(self) -> "SeverityRatios":
        if not self.critical >= self.high >= self.medium:
            raise ValueError("severity ratios must satisfy critical >= high >= medium")
        return self


class ConfidenceCaps(_FrozenModel):
    """Confidence ceilings per detection method (percent)."""

    statistical: float = Field(default=95.0, ge=0, le=100)
    trend: float = Field(default=90.0, ge=0, le=100)
    seasonal: float = Field(default=80.0, ge=0, le=100)  # Fixed, not capped


class DetectionThresholds(_FrozenModel):
    """Tunable constant tables used by the detection passes."""

    z_score: SensitivityTable = Field(
        default_factory=lambda: SensitivityTable(high=2.5, medium=3.5, low=4.5)
    )
    trend_change: SensitivityTable = Field(
        default_factory=lambda: SensitivityTable(high=0.1, medium=0.2, low=0.3)
    )
    severity_ratios: SeverityRatios = Field(default_factory=SeverityRatios)
    confidence_caps: ConfidenceCaps = Field(default_factory=ConfidenceCaps)
    seasonal_baseline_fraction: float = Field(default=0.3, ge=0)  # 30% of baseline
    seasonal_percent: float = Field(default=25.0, gt=0)
    escalation_percent: float = Field(default=50.0, ge=0)  # Escalated causes above this
    flat_window_min_percent: float = Field(default=25.0, ge=0)  # Min move vs. a zero-MAD window
    max_trend_window: int = Field(default=7, ge=2)


class AnomalyDetectionConfig(_FrozenModel):
    """Anomaly detector configuration."""

    sensitivity: Sensitivity = "MEDIUM"
    lookback_periods: int = Field(default=14, ge=2, le=366)
    seasonality_periods: int | None = Field(default=None, ge=1)
    exclude_weekends: bool = False
    validate_series: bool = True  # Reject unordered / duplicate timestamps
    thresholds: DetectionThresholds = Field(default_factory=DetectionThresholds)

    @property
    def z_score_threshold(self) -> float:
        return self.thresholds.z_score.for_level(self.sensitivity)

    @property
    def trend_change_threshold(self) -> float:
        return self.thresholds.trend_change.for_level(self.sensitivity)


class DeltaAnalysisConfig(_FrozenModel):
    """Period-over-period delta analysis configuration."""

    top_n: int = Field(default=5, ge=0)
    significant_change_threshold: float = Field(default=10.0, ge=0)  # Percentage
    include_zero_cost: bool = False
    anomaly_threshold: float = Field(default=25.0, ge=0)  # Percentage
    volatility_reference_std: float = Field(default=20.0, gt=0)  # Maps to score 50
    max_significant_changes: int = Field(default=5, ge=0)


class InsightConfig(_FrozenModel):
    """Thresholds for narrative insights and recommendations."""

    min_points: int = Field(default=7, ge=2)
    week_over_week_percent: float = Field(default=15.0, ge=0)
    month_over_month_percent: float = Field(default=25.0, ge=0)
    volatility_caution: float = Field(default=0.3, ge=0)
    volatility_recommendation: float = Field(default=0.2, ge=0)
    trend_recommendation: float = Field(default=0.1)
    trend_window: int = Field(default=14, ge=2)


class Config(_FrozenModel):
    """Root configuration for Cloud Cost Analytics."""

    project_name: str = "cloud-cost-analytics"
    environment: Literal["dev", "staging", "prod"] = "dev"

    anomaly_detection: AnomalyDetectionConfig = Field(default_factory=AnomalyDetectionConfig)
    delta_analysis: DeltaAnalysisConfig = Field(default_factory=DeltaAnalysisConfig)
    insights: InsightConfig = Field(default_factory=InsightConfig)
    max_workers: int | None = Field(default=None, ge=1)  # Parallel per-service analysis
