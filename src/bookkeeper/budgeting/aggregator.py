"""
Budget aggregation over a transaction snapshot.

Posted outflows inside the budget period are assigned to budget lines
by their resolved category (user, then AI slot), or by a manual
override that ignores the category. Each transaction lands on at most
one line: the line bound to its nearest category ancestor-or-self.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from bookkeeper.categorization.resolver import effective_category_id, resolve_category
from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.domain.enums import BudgetStatus
from bookkeeper.domain.models import Budget, BudgetLine, BudgetOverride, Transaction
from bookkeeper.logging_setup import get_logger

logger = get_logger(__name__)

# A line is near its limit once this share of the budget is spent.
NEAR_LIMIT_PERCENT = 80


def percentage_used(spent: int, budgeted: int) -> float:
    """Spent as a percentage of budgeted; 0 for an unbudgeted line."""
    if budgeted == 0:
        return 0.0
    return round(spent * 100 / budgeted, 2)


def classify_status(spent: int, budgeted: int) -> BudgetStatus:
    if spent > budgeted:
        return BudgetStatus.OVER_BUDGET
    if budgeted > 0 and spent * 100 >= budgeted * NEAR_LIMIT_PERCENT:
        return BudgetStatus.NEAR_LIMIT
    return BudgetStatus.ON_TRACK


@dataclass
class LinePerformance:
    line_id: str
    name: str
    category_id: Optional[str]
    group: Optional[str]
    budgeted: int
    spent: int = 0
    transaction_ids: List[str] = field(default_factory=list)
    category_missing: bool = False

    @property
    def remaining(self) -> int:
        return self.budgeted - self.spent

    @property
    def percentage_used(self) -> float:
        return percentage_used(self.spent, self.budgeted)

    @property
    def status(self) -> BudgetStatus:
        return classify_status(self.spent, self.budgeted)

    @property
    def unbudgeted(self) -> bool:
        return self.budgeted == 0


@dataclass
class GroupPerformance:
    """Rollup of the lines sharing a group label, recomputed from sums."""
    name: str
    lines: List[LinePerformance] = field(default_factory=list)

    @property
    def budgeted(self) -> int:
        return sum(line.budgeted for line in self.lines)

    @property
    def spent(self) -> int:
        return sum(line.spent for line in self.lines)

    @property
    def remaining(self) -> int:
        return self.budgeted - self.spent

    @property
    def percentage_used(self) -> float:
        return percentage_used(self.spent, self.budgeted)

    @property
    def status(self) -> BudgetStatus:
        return classify_status(self.spent, self.budgeted)


@dataclass
class BudgetReport:
    budget_id: str
    budget_name: str
    lines: List[LinePerformance] = field(default_factory=list)
    groups: List[GroupPerformance] = field(default_factory=list)
    unassigned_spent: int = 0
    unassigned_transaction_ids: List[str] = field(default_factory=list)
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total_budgeted(self) -> int:
        return sum(line.budgeted for line in self.lines)

    @property
    def total_spent(self) -> int:
        return sum(line.spent for line in self.lines)

    @property
    def total_remaining(self) -> int:
        return self.total_budgeted - self.total_spent

    def line(self, line_id: str) -> Optional[LinePerformance]:
        for performance in self.lines:
            if performance.line_id == line_id:
                return performance
        return None

    def group(self, name: str) -> Optional[GroupPerformance]:
        for performance in self.groups:
            if performance.name == name:
                return performance
        return None


class BudgetAggregator:
    """
    Computes spent/remaining/status per budget line.

    Usage:
        aggregator = BudgetAggregator(taxonomy)
        report = aggregator.aggregate(budget, transactions, overrides)
        for line in report.lines:
            print(line.name, line.spent, line.status)
    """

    def __init__(self, taxonomy: CategoryTaxonomy):
        self.taxonomy = taxonomy

    def _line_for_category(
        self,
        category_id: Optional[str],
        lines_by_category: Mapping[str, BudgetLine],
    ) -> Optional[BudgetLine]:
        """The line bound to the nearest ancestor-or-self of the category."""
        if category_id is None:
            return None
        if category_id in lines_by_category:
            return lines_by_category[category_id]
        for ancestor in self.taxonomy.ancestors_of(category_id):
            if ancestor.id in lines_by_category:
                return lines_by_category[ancestor.id]
        return None

    def aggregate(
        self,
        budget: Budget,
        transactions: Iterable[Transaction],
        overrides: Sequence[BudgetOverride] = (),
    ) -> BudgetReport:
        """
        Aggregate a transaction snapshot against a budget.

        Args:
            budget: Budget with its period and lines
            transactions: Transaction snapshot; only posted outflows inside
                the period count
            overrides: Manual transaction -> line assignments

        Returns:
            BudgetReport with per-line and per-group performance. Malformed
            transactions and overrides to unknown lines are counted in
            `skipped` and described in `errors`.
        """
        report = BudgetReport(budget_id=budget.id, budget_name=budget.name)
        performances: Dict[str, LinePerformance] = {}
        lines_by_category: Dict[str, BudgetLine] = {}

        for line in budget.lines:
            missing = line.category_id is not None and line.category_id not in self.taxonomy
            if missing:
                logger.debug("Budget line %s references missing category %s",
                             line.id, line.category_id)
            performance = LinePerformance(
                line_id=line.id,
                name=line.name,
                category_id=line.category_id,
                group=line.group,
                budgeted=line.budgeted_amount,
                category_missing=missing,
            )
            performances[line.id] = performance
            report.lines.append(performance)

            # First line wins when two lines share a category.
            if line.category_id is not None and not missing:
                lines_by_category.setdefault(line.category_id, line)

        override_lines: Dict[str, str] = {}
        for override in overrides:
            if override.budget_line_id not in performances:
                report.skipped += 1
                report.errors.append(
                    f"Override for transaction {override.transaction_id} references "
                    f"unknown budget line {override.budget_line_id}"
                )
                continue
            override_lines[override.transaction_id] = override.budget_line_id

        for txn in transactions:
            try:
                if not (txn.is_outflow and txn.is_posted):
                    continue
                if not budget.period.contains(txn.transaction_date):
                    continue

                line_id = override_lines.get(txn.id) if txn.id else None
                if line_id is None:
                    category_id = effective_category_id(resolve_category(txn), self.taxonomy)
                    line = self._line_for_category(category_id, lines_by_category)
                    line_id = line.id if line is not None else None

                if line_id is None:
                    report.unassigned_spent += txn.amount
                    if txn.id:
                        report.unassigned_transaction_ids.append(txn.id)
                    continue

                performance = performances[line_id]
                performance.spent += txn.amount
                if txn.id:
                    performance.transaction_ids.append(txn.id)
            except (AttributeError, TypeError, ValueError) as e:
                report.skipped += 1
                report.errors.append(f"Skipped malformed transaction {txn!r}: {e}")
                logger.warning("Skipping malformed transaction %r: %s", txn, e)

        groups: Dict[str, GroupPerformance] = {}
        for performance in report.lines:
            if performance.group is None:
                continue
            if performance.group not in groups:
                groups[performance.group] = GroupPerformance(name=performance.group)
                report.groups.append(groups[performance.group])
            groups[performance.group].lines.append(performance)

        logger.debug(
            "Aggregated budget %s: %d lines, spent %d, unassigned %d, skipped %d",
            budget.id, len(report.lines), report.total_spent,
            report.unassigned_spent, report.skipped,
        )
        return report


def apply_report(lines: Sequence[BudgetLine], report: BudgetReport) -> List[BudgetLine]:
    """
    Return budget lines carrying the recomputed spent/remaining.

    Values are replaced, never incremented, so applying the same report
    twice leaves the lines unchanged.
    """
    updated = []
    for line in lines:
        performance = report.line(line.id)
        if performance is None:
            updated.append(line)
            continue
        updated.append(
            replace(line, spent=performance.spent, remaining=performance.remaining)
        )
    return updated
