"""Derived performance metrics.

Ratio metrics are computed from raw counters. A zero denominator yields 0,
never NaN or infinity, so a freshly launched entity with no spend shows
zeros across the board.
"""

from typing import Mapping

# Raw counters the ratio metrics are derived from
COUNTER_KEYS = ("spend", "revenue", "impressions", "reach", "clicks", "conversions")

# Metric keys whose value is computed rather than reported
DERIVED_KEYS = ("roas", "ctr", "cpc", "cpm", "cpa", "cvr", "aov", "frequency")


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 when the denominator is zero or negative."""
    return numerator / denominator if denominator > 0 else 0.0


def metric_value(metrics: Mapping[str, float], key: str) -> float:
    """Read a metric, treating a missing key as 0."""
    value = metrics.get(key)
    return float(value) if value is not None else 0.0


def derive_ratio_metrics(metrics: Mapping[str, float]) -> dict[str, float]:
    """Compute the ratio metrics from raw counters.

    Args:
        metrics: Metrics bag with any of spend, revenue, impressions, reach,
            clicks and conversions. Missing counters count as 0.

    Returns:
        A new metrics dict: the input plus roas, ctr (%), cpc, cpm, cpa,
        cvr (%), aov and frequency.

    Example:
        >>> derive_ratio_metrics({"spend": 100, "revenue": 250, "clicks": 50})["roas"]
        2.5
        >>> derive_ratio_metrics({"spend": 0})["cpm"]
        0.0
    """
    spend = metric_value(metrics, "spend")
    revenue = metric_value(metrics, "revenue")
    impressions = metric_value(metrics, "impressions")
    reach = metric_value(metrics, "reach")
    clicks = metric_value(metrics, "clicks")
    conversions = metric_value(metrics, "conversions")

    derived = dict(metrics)
    derived.update({
        "roas": safe_divide(revenue, spend),
        "ctr": safe_divide(clicks, impressions) * 100,
        "cpc": safe_divide(spend, clicks),
        "cpm": safe_divide(spend, impressions) * 1000,
        "cpa": safe_divide(spend, conversions),
        "cvr": safe_divide(conversions, clicks) * 100,
        "aov": safe_divide(revenue, conversions),
        "frequency": safe_divide(impressions, reach),
    })
    return derived


def with_derived_metrics(metrics: Mapping[str, float]) -> dict[str, float]:
    """Add derived metrics the platform did not report.

    Reported values win over computed ones.
    """
    return {**derive_ratio_metrics(metrics), **metrics}
