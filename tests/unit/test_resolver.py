from datetime import datetime, timezone

import pytest

from bookkeeper.categorization import resolver as resolver_module
from bookkeeper.categorization.resolver import (
    UNCATEGORIZED_LABEL,
    UNKNOWN_CATEGORY_LABEL,
    CategoryResolver,
    category_matches_filter,
    resolve_category,
)
from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.domain.enums import CategorySource
from bookkeeper.domain.errors import CategoryNotFoundError
from bookkeeper.domain.models import AICategory, UserCategory

NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestResolveCategory:

    def test_user_slot_wins(self, make_transaction):
        # Arrange
        txn = make_transaction(
            ai_category=AICategory(primary="food", secondary="groceries", confidence=0.9),
            user_category=UserCategory(primary="housing", secondary="rent"),
        )

        # Act
        resolved = resolve_category(txn)

        # Assert
        assert resolved.source == CategorySource.USER
        assert resolved.category_id == "rent"

    def test_ai_slot_used_without_user_correction(self, make_transaction):
        txn = make_transaction(ai_category=AICategory(primary="food", confidence=0.9))

        resolved = resolve_category(txn)

        assert resolved.source == CategorySource.AI
        assert resolved.category_id == "food"

    def test_user_secondary_alone_still_wins(self, make_transaction):
        txn = make_transaction(
            ai_category=AICategory(primary="food"),
            user_category=UserCategory(secondary="rent"),
        )

        assert resolve_category(txn).source == CategorySource.USER

    def test_cleared_user_slot_falls_back_to_ai(self, make_transaction):
        txn = make_transaction(
            ai_category=AICategory(primary="food"),
            user_category=UserCategory(updated_at=NOW),
        )

        assert resolve_category(txn).source == CategorySource.AI

    def test_nothing_set_is_uncategorized(self, make_transaction):
        resolved = resolve_category(make_transaction())

        assert resolved.source == CategorySource.NONE
        assert not resolved.is_categorized
        assert resolved.category_id is None


@pytest.mark.unit
class TestDisplayName:

    def test_full_path(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        resolver = CategoryResolver(nested_taxonomy)
        txn = make_transaction(user_category=UserCategory(primary="utilities", secondary="water"))

        assert resolver.display_name(txn) == "Housing › Utilities › Water"

    def test_uncategorized(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        resolver = CategoryResolver(nested_taxonomy)

        assert resolver.display_name(make_transaction()) == UNCATEGORIZED_LABEL

    def test_dangling_reference(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        resolver = CategoryResolver(nested_taxonomy)
        txn = make_transaction(ai_category=AICategory(primary="deleted-category"))

        assert resolver.display_name(txn) == UNKNOWN_CATEGORY_LABEL

    def test_dangling_secondary_falls_back_to_primary(
        self, nested_taxonomy: CategoryTaxonomy, make_transaction
    ):
        resolver = CategoryResolver(nested_taxonomy)
        txn = make_transaction(ai_category=AICategory(primary="food", secondary="gone"))

        assert resolver.display_name(txn) == "Food"


@pytest.mark.unit
class TestApplyUserCorrection:

    def test_child_writes_parent_and_child(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        # Arrange
        resolver = CategoryResolver(nested_taxonomy)
        txn = make_transaction()

        # Act
        corrected = resolver.apply_user_correction(txn, "rent", now=NOW)

        # Assert
        assert corrected.user_category == UserCategory(
            primary="housing", secondary="rent", updated_at=NOW
        )
        assert not txn.user_category.is_set

    def test_root_writes_primary_only(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        resolver = CategoryResolver(nested_taxonomy)

        corrected = resolver.apply_user_correction(make_transaction(), "food", now=NOW)

        assert corrected.user_category.primary == "food"
        assert corrected.user_category.secondary is None

    def test_ai_slot_left_alone(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        ai = AICategory(primary="food", secondary="groceries", confidence=0.9)
        resolver = CategoryResolver(nested_taxonomy)

        corrected = resolver.apply_user_correction(make_transaction(ai_category=ai), "rent", now=NOW)

        assert corrected.ai_category == ai
        assert resolve_category(corrected).category_id == "rent"

    def test_same_correction_twice_is_unchanged(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        # Arrange
        resolver = CategoryResolver(nested_taxonomy)
        once = resolver.apply_user_correction(make_transaction(), "rent", now=NOW)

        # Act
        twice = resolver.apply_user_correction(once, "rent", now=datetime(2025, 3, 1, tzinfo=timezone.utc))

        # Assert
        assert twice is once
        assert twice.user_category.updated_at == NOW

    @pytest.mark.parametrize("choice", [None, "", "uncategorized", "None"])
    def test_clear_sentinels(self, choice, nested_taxonomy: CategoryTaxonomy, make_transaction):
        # Arrange
        resolver = CategoryResolver(nested_taxonomy)
        txn = make_transaction(user_category=UserCategory(primary="food", updated_at=NOW))

        # Act
        cleared = resolver.apply_user_correction(txn, choice, now=NOW)

        # Assert
        assert not cleared.user_category.is_set
        assert cleared.user_category.updated_at == NOW

    def test_unknown_category_raises(self, nested_taxonomy: CategoryTaxonomy, make_transaction):
        resolver = CategoryResolver(nested_taxonomy)

        with pytest.raises(CategoryNotFoundError):
            resolver.apply_user_correction(make_transaction(), "nope")

    def test_learning_sink_receives_merchant_key(
        self, nested_taxonomy: CategoryTaxonomy, make_transaction, mocker
    ):
        # Arrange
        sink = mocker.Mock()
        resolver = CategoryResolver(nested_taxonomy, learning_sink=sink)
        txn = make_transaction(description="SQ *BLUE BOTTLE #0123 OAKLAND CA")

        # Act
        resolver.apply_user_correction(txn, "groceries", now=NOW)

        # Assert
        sink.record.assert_called_once_with("BLUE BOTTLE OAKLAND", "groceries", txn.id)

    def test_learning_sink_failure_does_not_fail_correction(
        self, nested_taxonomy: CategoryTaxonomy, make_transaction, mocker
    ):
        # Arrange
        warning = mocker.patch.object(resolver_module.logger, "warning")
        sink = mocker.Mock()
        sink.record.side_effect = RuntimeError("store offline")
        resolver = CategoryResolver(nested_taxonomy, learning_sink=sink)

        # Act
        corrected = resolver.apply_user_correction(make_transaction(), "rent", now=NOW)

        # Assert
        assert corrected.user_category.secondary == "rent"
        warning.assert_called_once()

    def test_clearing_does_not_record_learning(
        self, nested_taxonomy: CategoryTaxonomy, make_transaction, mocker
    ):
        sink = mocker.Mock()
        resolver = CategoryResolver(nested_taxonomy, learning_sink=sink)

        resolver.apply_user_correction(make_transaction(), None, now=NOW)

        sink.record.assert_not_called()


@pytest.mark.unit
class TestCategoryFilter:

    @pytest.mark.parametrize("category_id,expected", [
        ("housing", True),
        ("utilities", True),
        ("electricity", True),
        ("rent", True),
        ("food", False),
        ("travel-utilities", False),
    ])
    def test_root_filter_covers_grandchildren(self, category_id, expected, nested_taxonomy):
        assert category_matches_filter(category_id, "housing", nested_taxonomy) is expected

    @pytest.mark.parametrize("category_id,expected", [
        ("utilities", True),
        ("water", True),
        ("housing", False),
        ("rent", False),
    ])
    def test_mid_level_filter(self, category_id, expected, nested_taxonomy):
        assert category_matches_filter(category_id, "utilities", nested_taxonomy) is expected

    def test_leaf_filter_is_exact(self, nested_taxonomy):
        assert category_matches_filter("water", "water", nested_taxonomy)
        assert not category_matches_filter("electricity", "water", nested_taxonomy)

    def test_no_filter_matches_everything(self, nested_taxonomy):
        assert category_matches_filter(None, None, nested_taxonomy)

    def test_unknown_ids_never_match(self, nested_taxonomy):
        assert not category_matches_filter("gone", "housing", nested_taxonomy)
        assert not category_matches_filter("rent", "gone", nested_taxonomy)
        assert not category_matches_filter(None, "housing", nested_taxonomy)

    def test_filter_transactions_uses_display_category(self, nested_taxonomy, make_transaction):
        # Arrange
        resolver = CategoryResolver(nested_taxonomy)
        corrected_to_rent = make_transaction(
            ai_category=AICategory(primary="food", secondary="groceries"),
            user_category=UserCategory(primary="housing", secondary="rent"),
        )
        groceries = make_transaction(ai_category=AICategory(primary="food", secondary="groceries"))
        uncategorized = make_transaction()

        # Act
        housing = resolver.filter_transactions([corrected_to_rent, groceries, uncategorized], "housing")
        food = resolver.filter_transactions([corrected_to_rent, groceries, uncategorized], "food")

        # Assert
        assert housing == [corrected_to_rent]
        assert food == [groceries]
