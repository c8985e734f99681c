from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

from bookkeeper.categorization import CategorizationEngine, CategoryResolver
from bookkeeper.domain.enums import Direction
from bookkeeper.domain.errors import TransactionNotFoundError
from bookkeeper.domain.models import Transaction
from bookkeeper.logging_setup import get_logger
from bookkeeper.parsers.factory import ParserFactory
from bookkeeper.recurring import DetectionResult, DetectorSettings, RecurringSeriesDetector
from bookkeeper.repositories.base import LearningSignalRepository, TransactionRepository
from bookkeeper.services.category_service import CategoryService
from bookkeeper.services.learning import RepositoryLearningSink, build_learned_rules
from bookkeeper.services.models import ImportResult

logger = get_logger(__name__)


class TransactionService:
    """
    Orchestrates transaction import, categorization, corrections and
    recurring detection over the repositories.

    All engine calls operate on snapshots fetched here first.
    """

    def __init__(
        self,
        repository: TransactionRepository,
        category_service: CategoryService,
        categorization_engine: Optional[CategorizationEngine] = None,
        learning_repository: Optional[LearningSignalRepository] = None,
        detector_settings: Optional[DetectorSettings] = None,
    ):
        self.repository = repository
        self.category_service = category_service
        self.learning_repository = learning_repository
        self._categorization_engine: Optional[CategorizationEngine] = categorization_engine
        self._engine_injected = categorization_engine is not None
        self._detector_settings = detector_settings

    @property
    def categorization_engine(self) -> CategorizationEngine:
        """Lazy-load categorization engine, with rules learned from corrections"""
        if self._categorization_engine is None:
            learned = []
            if self.learning_repository is not None:
                learned = build_learned_rules(
                    self.learning_repository.get_all(),
                    self.category_service.get_taxonomy(),
                )
            self._categorization_engine = CategorizationEngine(learned_rules=learned)
        return self._categorization_engine

    @property
    def detector_settings(self) -> DetectorSettings:
        if self._detector_settings is None:
            self._detector_settings = DetectorSettings.load()
        return self._detector_settings

    def _resolver(self) -> CategoryResolver:
        sink = None
        if self.learning_repository is not None:
            sink = RepositoryLearningSink(self.learning_repository)
        return CategoryResolver(self.category_service.get_taxonomy(), learning_sink=sink)

    def import_file(
        self,
        filepath: Path,
        source: str,
        dry_run: bool = False,
        categorize: bool = False,
    ) -> ImportResult:
        """
        Import transactions from a transaction-source file

        Args:
            filepath: The path to the export file
            source: The registered parser identifier
            dry_run: Preview without saving
            categorize: Write the AI category slot during import

        Returns:
            An ImportResult.
        """
        if not ParserFactory.is_loaded():
            ParserFactory.load_parsers_from_config()

        parser = ParserFactory.create_parser(source)
        transactions = parser.parse(str(filepath))
        errors = getattr(parser, "skipped_rows", 0)

        if categorize:
            transactions = self.categorization_engine.categorize_many(
                transactions,
                self.category_service.get_taxonomy(),
                overwrite=True,
            )

        if dry_run:
            new_transactions = []
            skipped = []
            for txn in transactions:
                if self.repository.exists(
                    transaction_date=txn.transaction_date,
                    description=txn.description,
                    amount=txn.amount,
                    account=txn.account,
                ):
                    skipped.append(txn)
                else:
                    new_transactions.append(txn)
        else:
            new_transactions = self.repository.save_many(transactions)

            new_ids = {id(t) for t in new_transactions}
            skipped = [t for t in transactions if id(t) not in new_ids]

        logger.info(
            "Imported %d of %d transactions from %s (%d duplicates)",
            len(new_transactions), len(transactions), filepath, len(skipped),
        )

        return ImportResult(
            total_parsed=len(transactions),
            new_transactions=len(new_transactions),
            duplicates_skipped=len(skipped),
            errors=errors,
            imported=new_transactions,
            skipped=skipped,
            filepath=str(filepath),
            source=source,
            dry_run=dry_run,
        )

    def get_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        direction: Optional[Direction] = None,
        category_id: Optional[str] = None,
    ) -> List[Transaction]:
        """
        Query transactions with optional filters.

        Args:
            start_date: Include transactions on or after this date
            end_date: Include transactions on or before this date
            direction: Filter by INFLOW or OUTFLOW
            category_id: Hierarchy-aware category filter; a parent
                category also matches its children

        Raises:
            CategoryNotFoundError: If the filter category doesn't exist

        Example:
            ### All January 2025 food spending
            transactions = service.get_transactions(
                start_date=date(2025, 1, 1),
                end_date=date(2025, 1, 31),
                direction=Direction.OUTFLOW,
                category_id="food-dining",
            )
        """
        transactions = self.repository.get_all(
            start_date=start_date,
            end_date=end_date,
            direction=direction,
        )
        if category_id is None:
            return transactions

        resolver = CategoryResolver(self.category_service.get_taxonomy())
        resolver.taxonomy.require(category_id)
        return resolver.filter_transactions(transactions, category_id)

    def categorize_transactions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        overwrite: bool = False,
    ) -> int:
        """
        Categorize stored transactions.

        Only the AI slot is written; user corrections are untouched and
        keep display precedence.

        Returns:
            Number of transactions whose AI category changed

        Example:
            ```
            # Categorize all transactions without an AI category
            count = service.categorize_transactions()

            # Re-categorize everything from January
            count = service.categorize_transactions(
                start_date=date(2025, 1, 1),
                end_date=date(2025, 1, 31),
                overwrite=True
            )
            ```
        """
        transactions = self.repository.get_all(start_date=start_date, end_date=end_date)
        if not transactions:
            return 0

        categorized = self.categorization_engine.categorize_many(
            transactions,
            self.category_service.get_taxonomy(),
            overwrite=overwrite,
        )

        updated = 0
        for before, after in zip(transactions, categorized):
            if before.ai_category == after.ai_category:
                continue
            self.repository.update_categories(after)
            updated += 1

        return updated

    def correct_category(
        self,
        transaction_id: str,
        category_id: Optional[str],
    ) -> Transaction:
        """
        Apply a user correction and persist it.

        A None/empty/"uncategorized" category clears the correction.
        Retrying the same correction is safe.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist
            CategoryNotFoundError: If the category doesn't exist
        """
        transaction = self.repository.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")

        corrected = self._resolver().apply_user_correction(transaction, category_id)
        if corrected is transaction:
            return transaction

        self.repository.update_categories(corrected)
        # Learned rules change with every correction.
        if self.learning_repository is not None and not self._engine_injected:
            self._categorization_engine = None
        return corrected

    def display_category(self, transaction: Transaction) -> str:
        return CategoryResolver(self.category_service.get_taxonomy()).display_name(transaction)

    def detect_recurring(
        self,
        as_of: Optional[date] = None,
        settings: Optional[DetectorSettings] = None,
    ) -> DetectionResult:
        """
        Detect recurring series in stored outflows.

        Args:
            as_of: End of the lookback window; defaults to today
            settings: Detector settings; defaults to engine.json
        """
        settings = settings or self.detector_settings
        as_of = as_of or date.today()

        transactions = self.repository.get_all(
            start_date=as_of - timedelta(days=settings.lookback_days),
            end_date=as_of,
            direction=Direction.OUTFLOW,
        )
        return RecurringSeriesDetector(settings).detect(transactions, as_of)
