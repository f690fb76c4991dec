"""
Cloud Cost Analytics - time-series analytics core for cloud spend.

A synchronous, in-memory toolkit for:
- Multi-method anomaly detection (modified z-score, trend shift, seasonality)
- Period-over-period cost deltas, top movers and volatility scoring
- Narrative insights and recommendations over aggregate and per-service series
"""

__version__ = "0.1.0"
