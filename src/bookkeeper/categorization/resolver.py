"""
Display-category resolution and user corrections.

Every place that needs "which category does this transaction show as"
goes through `resolve_category`; every place that filters by category
goes through `category_matches_filter`. Neither is re-implemented by
callers.

Display precedence is strict: user slot, then AI slot, then nothing.
The provider slot is only an input to the matcher and is never shown
as the resolved category.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Protocol

from bookkeeper.categorization.normalizer import normalize_merchant
from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.domain.enums import CategorySource
from bookkeeper.domain.models import Transaction, UserCategory
from bookkeeper.logging_setup import get_logger

logger = get_logger(__name__)

UNCATEGORIZED_LABEL = "Uncategorized"
UNKNOWN_CATEGORY_LABEL = "Unknown category"

# Chosen-category values that mean "clear my correction".
CLEAR_SENTINELS = frozenset({"", "uncategorized", "none"})


@dataclass(frozen=True)
class ResolvedCategory:
    source: CategorySource
    primary: Optional[str] = None
    secondary: Optional[str] = None

    @property
    def is_categorized(self) -> bool:
        return self.source != CategorySource.NONE

    @property
    def category_id(self) -> Optional[str]:
        """The most specific category id"""
        return self.secondary or self.primary


UNRESOLVED = ResolvedCategory(source=CategorySource.NONE)


class LearningSink(Protocol):
    """Best-effort receiver of merchant -> category corrections."""

    def record(self, merchant_key: str, category_id: str, transaction_id: Optional[str]) -> None:
        ...


def resolve_category(transaction: Transaction) -> ResolvedCategory:
    """
    Pick the category a transaction displays as.

    Returns:
        The user slot if either of its fields is set, else the AI slot
        if either of its fields is set, else an uncategorized result.
    """
    user = transaction.user_category
    if user.primary or user.secondary:
        return ResolvedCategory(CategorySource.USER, user.primary, user.secondary)

    ai = transaction.ai_category
    if ai.primary or ai.secondary:
        return ResolvedCategory(CategorySource.AI, ai.primary, ai.secondary)

    return UNRESOLVED


def effective_category_id(
    resolved: ResolvedCategory,
    taxonomy: CategoryTaxonomy,
) -> Optional[str]:
    """Most specific id of the resolved category that exists in the taxonomy."""
    if resolved.secondary and resolved.secondary in taxonomy:
        return resolved.secondary
    if resolved.primary and resolved.primary in taxonomy:
        return resolved.primary
    return None


def display_name(resolved: ResolvedCategory, taxonomy: CategoryTaxonomy) -> str:
    """
    Human-readable label, e.g. "Housing › Rent".

    Dangling references display as "Unknown category" rather than failing.
    """
    if not resolved.is_categorized:
        return UNCATEGORIZED_LABEL

    category_id = effective_category_id(resolved, taxonomy)
    if category_id is None:
        return UNKNOWN_CATEGORY_LABEL

    return " › ".join(taxonomy.path_names(category_id))


def category_matches_filter(
    category_id: Optional[str],
    filter_category_id: Optional[str],
    taxonomy: CategoryTaxonomy,
) -> bool:
    """
    Hierarchy-aware category filter.

    - a root filter matches the root, its children and grandchildren
    - a mid-level filter (has children) matches itself and its children
    - a leaf filter matches only the exact id

    A None filter matches everything. Ids missing from the taxonomy
    never match.
    """
    if filter_category_id is None:
        return True
    if category_id is None:
        return False

    selected = taxonomy.get(filter_category_id)
    category = taxonomy.get(category_id)
    if selected is None or category is None:
        return False

    if category.id == selected.id:
        return True

    if selected.is_root:
        if category.parent_category_id == selected.id:
            return True
        parent = taxonomy.get(category.parent_category_id)
        return parent is not None and parent.parent_category_id == selected.id

    if taxonomy.has_children(selected.id):
        return category.parent_category_id == selected.id

    return False


class CategoryResolver:
    """
    Resolves display categories and applies user corrections against a
    taxonomy snapshot.

    Usage:
        resolver = CategoryResolver(taxonomy, learning_sink=sink)
        resolver.resolve(txn).category_id
        corrected = resolver.apply_user_correction(txn, "housing-rent")
        resolver.filter_transactions(transactions, "housing")
    """

    def __init__(
        self,
        taxonomy: CategoryTaxonomy,
        learning_sink: Optional[LearningSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.taxonomy = taxonomy
        self.learning_sink = learning_sink
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, transaction: Transaction) -> ResolvedCategory:
        return resolve_category(transaction)

    def display_name(self, transaction: Transaction) -> str:
        return display_name(resolve_category(transaction), self.taxonomy)

    def apply_user_correction(
        self,
        transaction: Transaction,
        chosen_category_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Write a user correction and return the updated transaction.

        - An empty/sentinel choice clears both user fields and stamps updated_at.
        - A child category writes primary=parent, secondary=child.
        - A top-level category writes primary=category, secondary=None.

        Re-applying a correction the transaction already carries returns it
        unchanged, so retries are safe.

        Args:
            transaction: Transaction to correct
            chosen_category_id: Category id, or None/"" to clear
            now: Timestamp for updated_at; defaults to the resolver clock

        Returns:
            New Transaction; the input is not modified

        Raises:
            CategoryNotFoundError: If the id is not in the taxonomy snapshot
        """
        current = transaction.user_category

        if chosen_category_id is None or chosen_category_id.strip().lower() in CLEAR_SENTINELS:
            if not current.is_set and current.updated_at is not None:
                return transaction
            return replace(
                transaction,
                user_category=UserCategory(updated_at=now or self._clock()),
            )

        category = self.taxonomy.require(chosen_category_id)
        if category.parent_category_id is not None:
            primary, secondary = category.parent_category_id, category.id
        else:
            primary, secondary = category.id, None

        if current.primary == primary and current.secondary == secondary:
            return transaction

        corrected = replace(
            transaction,
            user_category=UserCategory(
                primary=primary,
                secondary=secondary,
                updated_at=now or self._clock(),
            ),
        )

        self._record_learning(corrected, category.id)

        return corrected

    def _record_learning(self, transaction: Transaction, category_id: str) -> None:
        """Notify the learning sink. Failures are logged, never raised."""
        if self.learning_sink is None:
            return

        merchant_key = normalize_merchant(transaction.merchant_name or transaction.description)
        try:
            self.learning_sink.record(merchant_key, category_id, transaction.id)
        except Exception:
            logger.warning(
                "Could not record learning signal for merchant %s", merchant_key, exc_info=True
            )

    def matches_category_filter(
        self,
        transaction: Transaction,
        filter_category_id: Optional[str],
    ) -> bool:
        """Whether the transaction's resolved category falls under the filter."""
        category_id = effective_category_id(resolve_category(transaction), self.taxonomy)
        return category_matches_filter(category_id, filter_category_id, self.taxonomy)

    def filter_transactions(
        self,
        transactions: Iterable[Transaction],
        filter_category_id: Optional[str],
    ) -> List[Transaction]:
        return [
            txn for txn in transactions
            if self.matches_category_filter(txn, filter_category_id)
        ]
