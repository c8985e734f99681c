from datetime import date
from typing import List, Optional

from bookkeeper.budgeting import (
    BudgetAggregator,
    BudgetRecommendation,
    BudgetReport,
    apply_report,
    recommend_adjustments,
)
from bookkeeper.domain.enums import Direction
from bookkeeper.domain.errors import BudgetLineNotFoundError, NotFoundError, TransactionNotFoundError
from bookkeeper.domain.models import Budget, BudgetLine, BudgetOverride, BudgetPeriod
from bookkeeper.logging_setup import get_logger
from bookkeeper.recurring import DetectorSettings, RecurringSeriesDetector
from bookkeeper.repositories.base import BudgetRepository, TransactionRepository
from bookkeeper.services.category_service import CategoryService

logger = get_logger(__name__)


class BudgetService:
    """Budget management and performance reporting over stored data."""

    def __init__(
        self,
        budget_repository: BudgetRepository,
        transaction_repository: TransactionRepository,
        category_service: CategoryService,
    ):
        self.budget_repository = budget_repository
        self.transaction_repository = transaction_repository
        self.category_service = category_service

    def get_budget(self, budget_id: str) -> Budget:
        """
        Raises:
            NotFoundError: If the budget doesn't exist
        """
        budget = self.budget_repository.get_budget(budget_id)
        if budget is None:
            raise NotFoundError(f"Budget '{budget_id}' not found")
        return budget

    def create_budget(
        self,
        name: str,
        start_date: date,
        end_date: date,
        workspace_id: Optional[str] = None,
    ) -> Budget:
        budget = Budget(
            id="",
            name=name,
            period=BudgetPeriod(start_date, end_date, workspace_id),
        )
        return self.budget_repository.save_budget(budget)

    def add_line(
        self,
        budget_id: str,
        name: str,
        budgeted_amount: int,
        category_id: Optional[str] = None,
        group: Optional[str] = None,
    ) -> BudgetLine:
        """
        Add a line to a budget.

        Raises:
            NotFoundError: If the budget doesn't exist
            CategoryNotFoundError: If the category doesn't exist
            ValidationError: If the amount is negative
        """
        self.get_budget(budget_id)
        if category_id is not None:
            self.category_service.get_taxonomy().require(category_id)

        line = BudgetLine(
            id="",
            name=name,
            budgeted_amount=budgeted_amount,
            category_id=category_id,
            group=group,
        )
        return self.budget_repository.save_line(budget_id, line)

    def add_override(
        self,
        budget_id: str,
        transaction_id: str,
        budget_line_id: str,
        reason: Optional[str] = None,
    ) -> BudgetOverride:
        """
        Assign a transaction to a line regardless of its category.

        Raises:
            NotFoundError: If the budget doesn't exist
            BudgetLineNotFoundError: If the line isn't part of this budget
            TransactionNotFoundError: If the transaction doesn't exist
        """
        budget = self.get_budget(budget_id)
        if budget_line_id not in {line.id for line in budget.lines}:
            raise BudgetLineNotFoundError(budget_line_id)
        if self.transaction_repository.get_by_id(transaction_id) is None:
            raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")

        override = BudgetOverride(transaction_id, budget_line_id, reason)
        return self.budget_repository.save_override(budget_id, override)

    def report(self, budget_id: str) -> BudgetReport:
        """Aggregate stored transactions against a budget."""
        budget = self.get_budget(budget_id)
        transactions = self.transaction_repository.get_all(
            start_date=budget.period.start_date,
            end_date=budget.period.end_date,
            direction=Direction.OUTFLOW,
        )
        overrides = self.budget_repository.get_overrides(budget_id)

        aggregator = BudgetAggregator(self.category_service.get_taxonomy())
        report = aggregator.aggregate(budget, transactions, overrides)

        for error in report.errors:
            logger.warning("Budget %s: %s", budget_id, error)
        return report

    def refresh(self, budget_id: str) -> BudgetReport:
        """
        Recompute a budget and write spent/remaining back to its lines.

        Stored values are replaced, so refreshing twice is harmless.
        """
        budget = self.get_budget(budget_id)
        report = self.report(budget_id)
        self.budget_repository.update_line_totals(apply_report(budget.lines, report))
        logger.info("Refreshed budget %s: spent %d of %d",
                    budget_id, report.total_spent, report.total_budgeted)
        return report

    def recommendations(
        self,
        budget_id: str,
        settings: Optional[DetectorSettings] = None,
    ) -> List[BudgetRecommendation]:
        """
        Suggest budget adjustments, including lines for recurring
        series detected up to the end of the budget period.
        """
        budget = self.get_budget(budget_id)
        report = self.report(budget_id)
        taxonomy = self.category_service.get_taxonomy()

        settings = settings or DetectorSettings.load()
        as_of = budget.period.end_date
        history = self.transaction_repository.get_all(
            end_date=as_of,
            direction=Direction.OUTFLOW,
        )
        detection = RecurringSeriesDetector(settings).detect(history, as_of)

        return recommend_adjustments(report, taxonomy, detection.series, history)
