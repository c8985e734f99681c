"""
Categorization system for bookkeeping transactions.

Provides merchant normalization, the category taxonomy snapshot, the
ordered pattern rule matcher (a chain of responsibility) and the
display-category resolver.

Quick Start:
    >>> from bookkeeper.categorization import CategorizationEngine, CategoryResolver
    >>>
    >>> engine = CategorizationEngine()
    >>> txn = engine.categorize(transaction, taxonomy)
    >>> CategoryResolver(taxonomy).display_name(txn)
    'Food & Dining › Coffee & Tea'
"""
from bookkeeper.categorization.base import CategorizationRule, MatchContext
from bookkeeper.categorization.categorizer import CategorizationEngine, resolve_match_ids
from bookkeeper.categorization.normalizer import UNKNOWN_MERCHANT, normalize_merchant
from bookkeeper.categorization.resolver import (
    CategoryResolver,
    LearningSink,
    ResolvedCategory,
    category_matches_filter,
    display_name,
    resolve_category,
)
from bookkeeper.categorization.rules import (
    DefaultRule,
    PatternRuleSet,
    ProviderCodeRule,
    load_rules,
)
from bookkeeper.categorization.taxonomy import CategoryTaxonomy

__all__ = [
    "CategorizationEngine",
    "CategorizationRule",
    "CategoryResolver",
    "CategoryTaxonomy",
    "DefaultRule",
    "LearningSink",
    "MatchContext",
    "PatternRuleSet",
    "ProviderCodeRule",
    "ResolvedCategory",
    "UNKNOWN_MERCHANT",
    "category_matches_filter",
    "display_name",
    "load_rules",
    "normalize_merchant",
    "resolve_category",
    "resolve_match_ids",
]
