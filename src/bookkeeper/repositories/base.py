from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from bookkeeper.domain.enums import Direction
from bookkeeper.domain.errors import BookkeeperError
from bookkeeper.domain.models import (
    Budget,
    BudgetLine,
    BudgetOverride,
    Category,
    LearningSignal,
    Transaction,
)


class DuplicateTransactionError(BookkeeperError):
    """Raised when attempting to save a duplicate transaction."""
    pass


class TransactionRepository(ABC):
    """
    Abstract repository for transaction persistence.

    The engine never writes provider-category fields; repositories
    store them exactly as imported.
    """

    @abstractmethod
    def save(self, transaction: Transaction) -> Transaction:
        """
        Save a transaction to the repository.

        Returns:
            Transaction with ID populated

        Raises:
            DuplicateTransactionError: If transaction already exists
        """
        pass

    @abstractmethod
    def save_many(self, transactions: List[Transaction]) -> List[Transaction]:
        """
        Save multiple transactions in a single operation, skipping duplicates.

        Returns:
            List of saved transactions with IDs
        """
        pass

    @abstractmethod
    def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    def get_all(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        direction: Optional[Direction] = None,
    ) -> List[Transaction]:
        """
        Retrieve transactions with optional filtering, newest first.

        Category filtering is hierarchy-aware and done by the resolver,
        not by the repository.
        """
        pass

    @abstractmethod
    def update_categories(self, transaction: Transaction) -> Transaction:
        """
        Persist the AI and user category slots of a transaction.

        Raises:
            TransactionNotFoundError: If transaction doesn't exist
        """
        pass

    @abstractmethod
    def delete(self, transaction_id: str) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    def exists(
        self,
        transaction_date: date,
        description: str,
        amount: int,
        account: Optional[str],
    ) -> bool:
        """
        Check if a transaction already exists.

        Used for deduplication during imports.
        """
        pass


class CategoryRepository(ABC):
    """Category source: supplies the current category tree."""

    @abstractmethod
    def get_all(self) -> List[Category]:
        pass

    @abstractmethod
    def save(self, category: Category) -> Category:
        pass

    @abstractmethod
    def delete(self, category_id: str) -> bool:
        pass


class BudgetRepository(ABC):
    """Budget line source and sink."""

    @abstractmethod
    def save_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    def get_budget(self, budget_id: str) -> Optional[Budget]:
        pass

    @abstractmethod
    def list_budgets(self) -> List[Budget]:
        pass

    @abstractmethod
    def save_line(self, budget_id: str, line: BudgetLine) -> BudgetLine:
        pass

    @abstractmethod
    def update_line_totals(self, lines: List[BudgetLine]) -> None:
        """
        Write recomputed spent/remaining values.

        Stored values are replaced, never incremented.
        """
        pass

    @abstractmethod
    def save_override(self, budget_id: str, override: BudgetOverride) -> BudgetOverride:
        pass

    @abstractmethod
    def get_overrides(self, budget_id: str) -> List[BudgetOverride]:
        pass


class LearningSignalRepository(ABC):
    """Learning sink storage for merchant -> category corrections."""

    @abstractmethod
    def add(self, signal: LearningSignal) -> None:
        pass

    @abstractmethod
    def get_all(self) -> List[LearningSignal]:
        pass
