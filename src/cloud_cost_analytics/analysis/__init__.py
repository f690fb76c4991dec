"""Cost analysis and anomaly detection for Cloud Cost Analytics."""

from cloud_cost_analytics.analysis.anomaly_detector import (
    Anomaly,
    AnomalyDetector,
    consolidate_anomalies,
    detect_anomalies,
)
from cloud_cost_analytics.analysis.cost_delta import (
    CostDelta,
    CostDeltaAnalysis,
    ServiceCostDelta,
    analyze_cost_delta,
    calculate_delta,
    enhance_costs_with_delta,
)
from cloud_cost_analytics.analysis.engine import (
    AnalyticsReport,
    CostAnalyticsEngine,
    generate_insights,
    generate_recommendations,
)

__all__ = [
    "Anomaly",
    "AnomalyDetector",
    "detect_anomalies",
    "consolidate_anomalies",
    "CostDelta",
    "ServiceCostDelta",
    "CostDeltaAnalysis",
    "calculate_delta",
    "analyze_cost_delta",
    "enhance_costs_with_delta",
    "AnalyticsReport",
    "CostAnalyticsEngine",
    "generate_insights",
    "generate_recommendations",
]
