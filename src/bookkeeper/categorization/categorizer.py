from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bookkeeper.categorization.base import CategorizationRule, MatchContext
from bookkeeper.categorization.normalizer import normalize_merchant
from bookkeeper.categorization.rules import (
    DefaultRule,
    PatternRuleSet,
    ProviderCodeRule,
    load_rules,
)
from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.config.settings import ConfigLoader
from bookkeeper.domain.models import AICategory, CategoryMatch, PatternRule, Transaction
from bookkeeper.logging_setup import get_logger

logger = get_logger(__name__)


def resolve_match_ids(match: CategoryMatch, taxonomy: CategoryTaxonomy) -> AICategory:
    """
    Turn a name-based match into taxonomy ids for the AI slot.

    The child is looked up under the matched parent, so a written
    secondary always has the written primary as its parent. Names that
    don't exist in this taxonomy leave the slot empty.
    """
    parents = taxonomy.find_all_by_name(match.category_parent)
    if not parents:
        return AICategory()

    if match.category_child:
        for parent in parents:
            child = taxonomy.find_by_name(match.category_child, parent_id=parent.id)
            if child is not None:
                return AICategory(
                    primary=parent.id,
                    secondary=child.id,
                    confidence=match.confidence,
                )

    return AICategory(primary=parents[0].id, confidence=match.confidence)


class CategorizationEngine:
    """
    Pattern rule matcher.

    Builds a chain of rules in priority order:
    1. Workspace rule overrides (from config)
    2. Learned merchant rules (from user corrections)
    3. Built-in merchant rules (config/defaults/rules.json)
    4. Provider code fallback (config/defaults/provider_mappings.json)
    5. Default (General › Miscellaneous, low confidence)

    Usage:
        # Production - loads from ConfigLoader
        engine = CategorizationEngine()

        # Testing - inject custom config
        test_config = {"rules": [...]}
        engine = CategorizationEngine(config=test_config)

        # Match signals, or write the AI slot of transactions
        match = engine.match("STARBUCKS", 450)
        categorized = engine.categorize_many(transactions, taxonomy)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        use_defaults: bool = True,
        provider_mappings: Optional[Dict[str, Dict[str, Any]]] = None,
        learned_rules: Optional[Sequence[PatternRule]] = None,
    ):
        """
        Initialize categorization engine.

        Args:
            config: Optional workspace rules config dict. If None, loads from ConfigLoader.
                Useful for testing with custom configs.
            use_defaults: Whether to include built-in rules and provider mappings
            provider_mappings: Optional provider code mapping, overrides the packaged one
            learned_rules: Rules learned from user corrections

        Raises:
            ValidationError: If a rule or mapping is malformed
            AmbiguousMatchError: If two rules in one table share a priority
        """
        self.use_defaults = use_defaults
        self._rule_chain: Optional[CategorizationRule] = None

        self._build_rule_chain(config, provider_mappings, list(learned_rules or []))

    def _load_workspace_rules_config(
        self,
        config: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if config is not None:
            return config
        return ConfigLoader.load_workspace_rules_config()

    def _load_builtin_rules_config(self) -> Dict[str, Any]:
        try:
            return ConfigLoader.load_rules_config()
        except FileNotFoundError:
            logger.warning("Built-in rule table not found, continuing without it")
            return {"rules": []}

    def _load_provider_mappings(
        self,
        provider_mappings: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> Dict[str, Dict[str, Any]]:
        if provider_mappings is not None:
            return provider_mappings
        if not self.use_defaults:
            return {}
        try:
            return ConfigLoader.load_provider_mappings().get("mappings", {})
        except FileNotFoundError:
            logger.warning("Provider mappings not found, continuing without them")
            return {}

    def _build_rule_chain(
        self,
        workspace_config: Optional[Dict[str, Any]],
        provider_mappings: Optional[Dict[str, Dict[str, Any]]],
        learned_rules: List[PatternRule],
    ) -> None:
        """
        Build the chain of responsibility for categorization rules.

        Priority order: workspace -> learned -> built-in -> provider -> default
        """
        rules: List[CategorizationRule] = []

        workspace_rules = load_rules(
            self._load_workspace_rules_config(workspace_config).get("rules", [])
        )
        if workspace_rules:
            rules.append(PatternRuleSet(workspace_rules, name="workspace"))

        if learned_rules:
            rules.append(PatternRuleSet(learned_rules, name="learned"))

        if self.use_defaults:
            builtin_rules = load_rules(self._load_builtin_rules_config().get("rules", []))
            if builtin_rules:
                rules.append(PatternRuleSet(builtin_rules, name="builtin"))

        mappings = self._load_provider_mappings(provider_mappings)
        if mappings:
            rules.append(ProviderCodeRule(mappings))

        rules.append(DefaultRule())

        self._rule_chain = rules[0]
        for i in range(len(rules) - 1):
            rules[i].set_next(rules[i + 1])

        logger.debug("Built rule chain: %s", self)

    def match(
        self,
        merchant: str,
        amount: int,
        provider_code: Union[str, Sequence[str], None] = None,
    ) -> CategoryMatch:
        """
        Match a normalized merchant string.

        Args:
            merchant: Normalized merchant string
            amount: Transaction amount magnitude in minor units
            provider_code: Optional provider code, or codes from most to least specific

        Returns:
            The first matching rule's CategoryMatch. Never None: a miss
            degrades to the low-confidence default.

        Example:
            ```
            >>> engine.match("STARBUCKS", 450)
            CategoryMatch(category_parent='Food & Dining', category_child='Coffee & Tea', ...)
            ```
        """
        if not self._rule_chain:
            raise RuntimeError("Rule chain not initialized")

        if provider_code is None:
            codes: Tuple[str, ...] = ()
        elif isinstance(provider_code, str):
            codes = (provider_code,)
        else:
            codes = tuple(provider_code)

        match = self._rule_chain.categorize(MatchContext(merchant, amount, codes))

        assert match is not None, "Rule chain should never return None"

        return match

    def match_transaction(self, transaction: Transaction) -> CategoryMatch:
        """Match a transaction on its normalized merchant, amount and provider codes."""
        merchant = normalize_merchant(transaction.merchant_name or transaction.description)
        return self.match(merchant, transaction.amount, transaction.provider_category.codes)

    def categorize(self, transaction: Transaction, taxonomy: CategoryTaxonomy) -> Transaction:
        """
        Return a copy of the transaction with its AI slot written.

        Args:
            transaction: Transaction to categorize
            taxonomy: Category snapshot used to resolve rule targets to ids

        Returns:
            New Transaction; the input is not modified
        """
        match = self.match_transaction(transaction)
        ai_category = resolve_match_ids(match, taxonomy)

        if not ai_category.is_set:
            logger.debug(
                "Match %s for %r has no category in the taxonomy", match.label, transaction
            )

        return replace(transaction, ai_category=ai_category)

    def categorize_many(
        self,
        transactions: Sequence[Transaction],
        taxonomy: CategoryTaxonomy,
        overwrite: bool = False,
    ) -> List[Transaction]:
        """
        Categorize multiple transactions.

        Args:
            transactions: List of transactions to categorize
            taxonomy: Category snapshot
            overwrite: If True, re-categorize even if the AI slot is set.
                      If False, only categorize transactions without one.

        Returns:
            List of transactions with AI categories assigned, in input order
        """
        categorized = []

        for txn in transactions:
            if not overwrite and txn.ai_category.is_set:
                categorized.append(txn)
                continue

            categorized.append(self.categorize(txn, taxonomy))

        return categorized

    def get_rule_chain_info(self) -> str:
        """
        Get information about the current rule chain.

        Useful for debugging and understanding which rules are active.
        """
        if not self._rule_chain:
            return "No rules loaded"

        rules = []
        current = self._rule_chain
        priority = 1

        while current:
            rules.append(f"{priority}. {current}")
            current = current.next_rule
            priority += 1

        return "\n".join(rules)

    def __repr__(self) -> str:
        num_rules = 0
        current = self._rule_chain
        while current:
            num_rules += 1
            current = current.next_rule

        return f"CategorizationEngine({num_rules} rules in chain)"
