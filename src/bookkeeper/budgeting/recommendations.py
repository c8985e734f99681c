"""
Budget adjustment suggestions derived from a budget report and detected
recurring series. Suggestions are advisory and never applied.
"""
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from bookkeeper.budgeting.aggregator import BudgetReport
from bookkeeper.categorization.resolver import effective_category_id, resolve_category
from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.domain.enums import RecommendationType
from bookkeeper.domain.models import RecurringSeries, Transaction

# Percent of budget used
OVERSPEND_PERCENT = 120
UNDERSPEND_PERCENT = 50

# Lines budgeted at or below this (minor units) are never cut.
MIN_DECREASE_BUDGET = 10000

INCREASE_CONFIDENCE = 0.85
DECREASE_CONFIDENCE = 0.75


@dataclass(frozen=True)
class BudgetRecommendation:
    recommendation_type: RecommendationType
    category_id: Optional[str]
    current_amount: int
    suggested_amount: int
    confidence: float
    reason: str
    budget_line_id: Optional[str] = None


def _ceil_scaled(amount: int, tenths: int) -> int:
    """ceil(amount * tenths / 10) in integer arithmetic"""
    return -(-amount * tenths // 10)


def _series_category(
    series: RecurringSeries,
    transactions_by_id: Dict[str, Transaction],
    taxonomy: CategoryTaxonomy,
) -> Optional[str]:
    """Most common resolved category among the series' transactions."""
    counts: Counter = Counter()
    for txn_id in series.transaction_ids:
        txn = transactions_by_id.get(txn_id)
        if txn is None:
            continue
        category_id = effective_category_id(resolve_category(txn), taxonomy)
        if category_id is not None:
            counts[category_id] += 1
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def _is_covered(category_id: str, budgeted_ids: Iterable[str], taxonomy: CategoryTaxonomy) -> bool:
    lineage = {category_id} | {a.id for a in taxonomy.ancestors_of(category_id)}
    return any(budgeted_id in lineage for budgeted_id in budgeted_ids)


def recommend_adjustments(
    report: BudgetReport,
    taxonomy: CategoryTaxonomy,
    recurring: Sequence[RecurringSeries] = (),
    transactions: Iterable[Transaction] = (),
) -> List[BudgetRecommendation]:
    """
    Suggest budget changes.

    - increase a line that used more than 120% of its budget
    - decrease a line that used less than 50% of a budget above $100
    - add a line for a recurring series whose category has no line

    Args:
        report: Aggregated budget report
        taxonomy: Category snapshot
        recurring: Detected recurring series, highest confidence first
        transactions: Transactions the series were detected from, used to
            find each series' category

    Returns:
        Recommendations, line adjustments first
    """
    recommendations: List[BudgetRecommendation] = []

    for line in report.lines:
        if line.budgeted == 0:
            continue

        if line.spent * 100 > line.budgeted * OVERSPEND_PERCENT:
            recommendations.append(BudgetRecommendation(
                recommendation_type=RecommendationType.INCREASE,
                category_id=line.category_id,
                current_amount=line.budgeted,
                suggested_amount=_ceil_scaled(line.spent, 11),
                confidence=INCREASE_CONFIDENCE,
                reason=f"{line.name} used {line.percentage_used:.0f}% of its budget",
                budget_line_id=line.line_id,
            ))
        elif (
            line.budgeted > MIN_DECREASE_BUDGET
            and line.spent * 100 < line.budgeted * UNDERSPEND_PERCENT
        ):
            recommendations.append(BudgetRecommendation(
                recommendation_type=RecommendationType.DECREASE,
                category_id=line.category_id,
                current_amount=line.budgeted,
                suggested_amount=_ceil_scaled(line.spent, 12),
                confidence=DECREASE_CONFIDENCE,
                reason=f"{line.name} used only {line.percentage_used:.0f}% of its budget",
                budget_line_id=line.line_id,
            ))

    if not recurring:
        return recommendations

    transactions_by_id = {t.id: t for t in transactions if t.id}
    budgeted_ids = [
        line.category_id for line in report.lines
        if line.category_id is not None and not line.category_missing
    ]
    suggested: set = set()

    for series in recurring:
        category_id = _series_category(series, transactions_by_id, taxonomy)
        if category_id is None or category_id in suggested:
            continue
        if _is_covered(category_id, budgeted_ids, taxonomy):
            continue

        suggested.add(category_id)
        recommendations.append(BudgetRecommendation(
            recommendation_type=RecommendationType.ADD_CATEGORY,
            category_id=category_id,
            current_amount=0,
            suggested_amount=series.monthly_equivalent,
            confidence=series.confidence,
            reason=(
                f"{series.merchant_key} recurs {series.cadence.value} "
                f"with no budget line for {' › '.join(taxonomy.path_names(category_id))}"
            ),
        ))

    return recommendations
