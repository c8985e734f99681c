from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

from bookkeeper.domain.models import CategoryMatch


@dataclass(frozen=True)
class MatchContext:
    """Signals a rule can look at: normalized merchant, amount, provider codes"""
    merchant: str
    amount: int
    provider_codes: Tuple[str, ...] = ()


class CategorizationRule(ABC):
    """
    Abstract base class for all categorization rules.

    Implements Chain of Responsibility:
    - Each rule tries to categorize a transaction
    - If it can't it passes to the next rule
    - Rules are tried in priority order

    Usage:
        Create chain: specific -> general -> default
        ```
        workspace_rules = PatternRuleSet(...)
        provider_rule = ProviderCodeRule(...)
        default_rule = DefaultRule()

        workspace_rules.set_next(provider_rule).set_next(default_rule)

        match = workspace_rules.categorize(context)
        ```
    """

    def __init__(self):
        self._next_rule: Optional['CategorizationRule'] = None

    def set_next(self, rule: 'CategorizationRule') -> 'CategorizationRule':
        """
        Set the next rule in the chain.

        Args:
            rule: The next rule to try if this one doesn't match

        Returns:
            The rule that was set (for chaining)

        Example:
            `rule1.set_next(rule2).set_next(rule3)`
        """
        self._next_rule = rule
        return rule

    @property
    def next_rule(self) -> Optional['CategorizationRule']:
        return self._next_rule

    @abstractmethod
    def _matches(self, context: MatchContext) -> bool:
        """
        Check if this rule matches the context.

        Subclasses implement their specific matching logic here.

        Args:
            context: Merchant/amount/provider signals to check

        Returns:
            True if this rule can categorize this context
        """
        pass

    @abstractmethod
    def _get_match(self, context: MatchContext) -> CategoryMatch:
        """
        Get the category match for the context.

        Called only if _matches() returns True.
        """
        pass

    def categorize(self, context: MatchContext) -> Optional[CategoryMatch]:
        """
        Attempt to categorize.

        This is the main method called by clients. It:
        1. Checks if a rule matches
        2. If yes, returns the match
        3. If no, tries the next rule in the chain

        Args:
            context: Signals to categorize.

        Returns:
            CategoryMatch, or None if no rules matched
        """
        if self._matches(context):
            return self._get_match(context)

        if self._next_rule:
            return self._next_rule.categorize(context)

        return None

    def __repr__(self):
        return f"{self.__class__.__name__}()"
