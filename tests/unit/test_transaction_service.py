from datetime import date, datetime, timezone
from pathlib import Path
from typing import List

import pytest

from bookkeeper.categorization import CategorizationEngine
from bookkeeper.domain.enums import Cadence, Direction
from bookkeeper.domain.errors import CategoryNotFoundError, TransactionNotFoundError
from bookkeeper.domain.models import AICategory, LearningSignal, Transaction, UserCategory
from bookkeeper.parsers.factory import ParserFactory
from bookkeeper.recurring import DetectorSettings
from bookkeeper.repositories.base import (
    CategoryRepository,
    LearningSignalRepository,
    TransactionRepository,
)
from bookkeeper.services.category_service import CategoryService
from bookkeeper.services.models import ImportResult
from bookkeeper.services.transaction_service import TransactionService


@pytest.fixture
def mock_repository(mocker) -> TransactionRepository:
    """Create a mock repository"""
    return mocker.Mock(spec=TransactionRepository)


@pytest.fixture
def mock_learning_repository(mocker) -> LearningSignalRepository:
    repository = mocker.Mock(spec=LearningSignalRepository)
    repository.get_all.return_value = []
    return repository


@pytest.fixture
def category_service(mocker, seed_categories) -> CategoryService:
    repository = mocker.Mock(spec=CategoryRepository)
    repository.get_all.return_value = seed_categories
    return CategoryService(repository)


@pytest.fixture
def engine() -> CategorizationEngine:
    return CategorizationEngine(config={"rules": []})


@pytest.fixture
def service(mock_repository, category_service, engine, mock_learning_repository) -> TransactionService:
    """Create service with mocked repositories"""
    return TransactionService(
        repository=mock_repository,
        category_service=category_service,
        categorization_engine=engine,
        learning_repository=mock_learning_repository,
        detector_settings=DetectorSettings(),
    )


@pytest.fixture
def sample_transactions(make_transaction) -> List[Transaction]:
    return [
        make_transaction(description="STARBUCKS STORE 0042", amount=450),
        make_transaction(description="ACME PROPERTY MGMT", amount=120000),
    ]


@pytest.mark.unit
class TestTransactionServiceQuery:
    """Test query operations"""

    def test_get_transactions_calls_repository(
            self,
            service: TransactionService,
            mock_repository,
            sample_transactions: List[Transaction]
    ):
        # Arrange
        mock_repository.get_all.return_value = sample_transactions

        # Act
        result = service.get_transactions()

        # Assert
        mock_repository.get_all.assert_called_once_with(
            start_date=None,
            end_date=None,
            direction=None,
        )
        assert result == sample_transactions

    def test_get_transactions_with_filters(self, service, mock_repository, sample_transactions):
        mock_repository.get_all.return_value = sample_transactions

        service.get_transactions(
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
            direction=Direction.OUTFLOW,
        )

        mock_repository.get_all.assert_called_once_with(
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
            direction=Direction.OUTFLOW,
        )

    def test_category_filter_includes_children(self, service, mock_repository, make_transaction):
        # Arrange
        coffee = make_transaction(
            ai_category=AICategory(primary="food-dining", secondary="food-dining-coffee-tea")
        )
        rent = make_transaction(user_category=UserCategory(primary="housing", secondary="housing-rent"))
        mock_repository.get_all.return_value = [coffee, rent]

        # Act
        result = service.get_transactions(category_id="food-dining")

        # Assert
        assert result == [coffee]

    def test_unknown_filter_category_raises(self, service, mock_repository):
        mock_repository.get_all.return_value = []

        with pytest.raises(CategoryNotFoundError):
            service.get_transactions(category_id="nope")


@pytest.mark.unit
class TestTransactionServiceCategorize:

    def test_categorize_writes_ai_slot(self, service, mock_repository, sample_transactions):
        # Arrange
        mock_repository.get_all.return_value = sample_transactions

        # Act
        count = service.categorize_transactions()

        # Assert
        assert count == 2
        updated = [c.args[0] for c in mock_repository.update_categories.call_args_list]
        assert updated[0].ai_category.secondary == "food-dining-coffee-tea"
        assert updated[1].ai_category.secondary == "housing-rent"

    def test_already_categorized_untouched(self, service, mock_repository, make_transaction):
        mock_repository.get_all.return_value = [
            make_transaction(description="STARBUCKS", ai_category=AICategory(primary="shopping")),
        ]

        assert service.categorize_transactions() == 0
        mock_repository.update_categories.assert_not_called()

    def test_no_transactions(self, service, mock_repository):
        mock_repository.get_all.return_value = []

        assert service.categorize_transactions() == 0

    def test_learned_rules_feed_default_engine(
        self, mock_repository, category_service, mock_learning_repository
    ):
        # Arrange
        recorded = datetime(2025, 1, 1, tzinfo=timezone.utc)
        mock_learning_repository.get_all.return_value = [
            LearningSignal("BLUE BOTTLE", "food-dining-coffee-tea", recorded) for _ in range(3)
        ]
        service = TransactionService(
            repository=mock_repository,
            category_service=category_service,
            learning_repository=mock_learning_repository,
        )

        # Act
        match = service.categorization_engine.match("BLUE BOTTLE", 600)

        # Assert
        assert match.rule_name == "learned:BLUE BOTTLE"
        assert match.category_child == "Coffee & Tea"


@pytest.mark.unit
class TestTransactionServiceCorrections:

    def test_correct_category(self, service, mock_repository, mock_learning_repository, make_transaction):
        # Arrange
        txn = make_transaction(description="ACME PROPERTY MGMT")
        mock_repository.get_by_id.return_value = txn

        # Act
        corrected = service.correct_category(txn.id, "housing-rent")

        # Assert
        assert corrected.user_category.primary == "housing"
        assert corrected.user_category.secondary == "housing-rent"
        mock_repository.update_categories.assert_called_once_with(corrected)
        signal = mock_learning_repository.add.call_args.args[0]
        assert signal.merchant_key == "ACME PROPERTY MGMT"
        assert signal.category_id == "housing-rent"

    def test_repeated_correction_is_not_rewritten(self, service, mock_repository, make_transaction):
        txn = make_transaction(user_category=UserCategory(primary="housing", secondary="housing-rent"))
        mock_repository.get_by_id.return_value = txn

        result = service.correct_category(txn.id, "housing-rent")

        assert result is txn
        mock_repository.update_categories.assert_not_called()

    def test_missing_transaction(self, service, mock_repository):
        mock_repository.get_by_id.return_value = None

        with pytest.raises(TransactionNotFoundError):
            service.correct_category("txn-404", "housing-rent")

    def test_unknown_category(self, service, mock_repository, make_transaction):
        mock_repository.get_by_id.return_value = make_transaction()

        with pytest.raises(CategoryNotFoundError):
            service.correct_category("txn-1", "nope")

        mock_repository.update_categories.assert_not_called()

    def test_display_category(self, service, make_transaction):
        txn = make_transaction(ai_category=AICategory(primary="housing", secondary="housing-rent"))

        assert service.display_category(txn) == "Housing › Rent"


@pytest.mark.unit
class TestTransactionServiceImport:

    @pytest.fixture
    def mock_parser(self, mocker, sample_transactions):
        parser = mocker.Mock()
        parser.parse.return_value = sample_transactions
        parser.skipped_rows = 1
        mocker.patch.object(ParserFactory, "is_loaded", return_value=True)
        mocker.patch.object(ParserFactory, "create_parser", return_value=parser)
        return parser

    def test_import_saves_new_transactions(
        self, service, mock_repository, mock_parser, sample_transactions
    ):
        # Arrange
        mock_repository.save_many.return_value = [sample_transactions[0]]

        # Act
        result = service.import_file(Path("export.csv"), "aggregator-csv")

        # Assert
        assert isinstance(result, ImportResult)
        assert result.total_parsed == 2
        assert result.new_transactions == 1
        assert result.duplicates_skipped == 1
        assert result.skipped == [sample_transactions[1]]
        assert result.errors == 1
        assert result.partial_success
        mock_parser.parse.assert_called_once_with("export.csv")

    def test_dry_run_does_not_save(self, service, mock_repository, mock_parser):
        # Arrange
        mock_repository.exists.side_effect = [False, True]

        # Act
        result = service.import_file(Path("export.csv"), "aggregator-csv", dry_run=True)

        # Assert
        assert result.dry_run
        assert result.new_transactions == 1
        assert result.duplicates_skipped == 1
        mock_repository.save_many.assert_not_called()

    def test_import_with_categorization(self, service, mock_repository, mock_parser):
        mock_repository.save_many.side_effect = lambda transactions: transactions

        result = service.import_file(Path("export.csv"), "aggregator-csv", categorize=True)

        assert [t.ai_category.primary for t in result.imported] == ["food-dining", "housing"]


@pytest.mark.unit
class TestTransactionServiceRecurring:

    def test_detect_recurring_queries_lookback_window(self, service, mock_repository, make_transaction):
        # Arrange
        as_of = date(2025, 6, 30)
        mock_repository.get_all.return_value = [
            make_transaction(description="ACME PROPERTY MGMT", amount=120000,
                             transaction_date=date(2025, month, 1))
            for month in range(1, 7)
        ]

        # Act
        result = service.detect_recurring(as_of=as_of)

        # Assert
        mock_repository.get_all.assert_called_once_with(
            start_date=date(2025, 1, 1),
            end_date=as_of,
            direction=Direction.OUTFLOW,
        )
        assert [s.cadence for s in result.series] == [Cadence.MONTHLY]
