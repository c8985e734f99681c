"""
Learning from user corrections.

Corrections are recorded as merchant -> category signals. Once a
merchant has been corrected to the same category often enough, it
becomes a rule matching that whole merchant key, evaluated ahead of the
built-in rule table.
"""
import re
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from bookkeeper.categorization.normalizer import UNKNOWN_MERCHANT
from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.domain.models import LearningSignal, PatternRule
from bookkeeper.logging_setup import get_logger
from bookkeeper.repositories.base import LearningSignalRepository

logger = get_logger(__name__)

DEFAULT_MIN_OCCURRENCES = 3
LEARNED_RULE_CONFIDENCE = 0.8


class RepositoryLearningSink:
    """Learning sink that stores each correction as a LearningSignal."""

    def __init__(
        self,
        repository: LearningSignalRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record(self, merchant_key: str, category_id: str, transaction_id: Optional[str]) -> None:
        self.repository.add(LearningSignal(
            merchant_key=merchant_key,
            category_id=category_id,
            recorded_at=self._clock(),
            transaction_id=transaction_id,
        ))


def build_learned_rules(
    signals: Iterable[LearningSignal],
    taxonomy: CategoryTaxonomy,
    min_occurrences: int = DEFAULT_MIN_OCCURRENCES,
) -> List[PatternRule]:
    """
    Turn repeated corrections into keyword rules.

    A merchant is learned when one category holds a strict majority of
    its signals and was chosen at least `min_occurrences` times.
    Categories no longer in the taxonomy are ignored.

    Returns:
        Rules ordered by correction count, most corrected first
    """
    by_merchant: Dict[str, Counter] = defaultdict(Counter)
    for signal in signals:
        if signal.merchant_key and signal.merchant_key != UNKNOWN_MERCHANT:
            by_merchant[signal.merchant_key][signal.category_id] += 1

    learned = []
    for merchant_key, counts in by_merchant.items():
        category_id, count = counts.most_common(1)[0]
        if count < min_occurrences or count * 2 <= sum(counts.values()):
            continue

        category = taxonomy.get(category_id)
        if category is None:
            logger.debug("Not learning %s: category %s is gone", merchant_key, category_id)
            continue

        parent = taxonomy.parent_of(category.id)
        if parent is not None:
            target_parent, target_child = parent.name, category.name
        else:
            target_parent, target_child = category.name, None

        learned.append((count, merchant_key, PatternRule(
            target_parent=target_parent,
            target_child=target_child,
            regex_patterns=(f"^{re.escape(merchant_key)}$",),
            base_confidence=LEARNED_RULE_CONFIDENCE,
            name=f"learned:{merchant_key}",
        )))

    learned.sort(key=lambda item: (-item[0], item[1]))
    return [rule for _, _, rule in learned]
