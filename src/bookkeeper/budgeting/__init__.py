"""Budget aggregation and adjustment recommendations."""
from bookkeeper.budgeting.aggregator import (
    NEAR_LIMIT_PERCENT,
    BudgetAggregator,
    BudgetReport,
    GroupPerformance,
    LinePerformance,
    apply_report,
    classify_status,
)
from bookkeeper.budgeting.recommendations import BudgetRecommendation, recommend_adjustments

__all__ = [
    "NEAR_LIMIT_PERCENT",
    "BudgetAggregator",
    "BudgetRecommendation",
    "BudgetReport",
    "GroupPerformance",
    "LinePerformance",
    "apply_report",
    "classify_status",
    "recommend_adjustments",
]
