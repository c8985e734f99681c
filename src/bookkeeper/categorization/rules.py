from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from bookkeeper.categorization.base import CategorizationRule, MatchContext
from bookkeeper.domain.enums import MatchMethod
from bookkeeper.domain.errors import AmbiguousMatchError, ValidationError
from bookkeeper.domain.models import CategoryMatch, PatternRule

# Added to a rule's base confidence when the amount corroborates it
# (e.g. a large payment to a property manager looks like rent).
AMOUNT_CORROBORATION_BOOST = 0.1
MAX_CONFIDENCE = 1.0

# Provider codes are coarse, so they never outrank a merchant rule.
PROVIDER_CONFIDENCE_CAP = 0.8

DEFAULT_PARENT = "General"
DEFAULT_CHILD = "Miscellaneous"
DEFAULT_CONFIDENCE = 0.3


def order_rules(rules: Iterable[PatternRule]) -> List[PatternRule]:
    """
    Put rules in evaluation order.

    Rules with an explicit priority come first (lowest number first),
    the rest keep their listed order after them.

    Raises:
        AmbiguousMatchError: If two rules share a priority
    """
    rules = list(rules)
    seen: Dict[int, PatternRule] = {}
    for rule in rules:
        if rule.priority is None:
            continue
        if rule.priority in seen:
            raise AmbiguousMatchError(
                f"Rules {seen[rule.priority].name or seen[rule.priority].target_parent!r} and "
                f"{rule.name or rule.target_parent!r} share priority {rule.priority}"
            )
        seen[rule.priority] = rule

    indexed = list(enumerate(rules))
    indexed.sort(
        key=lambda pair: (
            pair[1].priority is None,
            pair[1].priority if pair[1].priority is not None else 0,
            pair[0],
        )
    )
    return [rule for _, rule in indexed]


def load_rules(rule_defs: Sequence[Dict[str, Any]]) -> List[PatternRule]:
    """
    Build and order rules from JSON definitions.

    Malformed definitions are rejected here, never at match time.
    """
    return order_rules(PatternRule.from_dict(rule_def) for rule_def in rule_defs)


class PatternRuleSet(CategorizationRule):
    """
    Ordered merchant pattern rules. First matching rule wins.

    Example:
        ```
        rules = PatternRuleSet([
            PatternRule(target_parent="Housing", target_child="Rent",
                        merchant_keywords=frozenset({"RENT", "LEASE"}),
                        base_confidence=0.95),
        ], name="builtin")
        ```
    """

    def __init__(self, rules: Sequence[PatternRule], name: str = "rules"):
        super().__init__()
        self.rules = order_rules(rules)
        self.name = name

    def _first_match(self, context: MatchContext) -> Optional[PatternRule]:
        for rule in self.rules:
            if rule.amount_in_range(context.amount) and rule.matches_merchant(context.merchant):
                return rule
        return None

    def _matches(self, context: MatchContext) -> bool:
        return self._first_match(context) is not None

    def _get_match(self, context: MatchContext) -> CategoryMatch:
        rule = self._first_match(context)
        if rule is None:
            raise RuntimeError("_get_match called but no match found")

        confidence = rule.base_confidence
        if rule.boost_min_amount is not None and context.amount >= rule.boost_min_amount:
            confidence = min(confidence + AMOUNT_CORROBORATION_BOOST, MAX_CONFIDENCE)

        return CategoryMatch(
            category_parent=rule.target_parent,
            category_child=rule.target_child,
            confidence=round(confidence, 4),
            method=MatchMethod.MERCHANT_RULE,
            rule_name=rule.name,
        )

    def __repr__(self) -> str:
        return f"PatternRuleSet('{self.name}', {len(self.rules)} rules)"


@dataclass(frozen=True)
class ProviderMapping:
    parent: str
    child: Optional[str]
    confidence: float


class ProviderCodeRule(CategorizationRule):
    """
    Maps upstream provider category codes onto the taxonomy.

    Codes are tried from most to least specific (detailed, then primary).

    Config format:
        {
            "FOOD_AND_DRINK_COFFEE": {"parent": "Food & Dining", "child": "Coffee & Tea", "confidence": 0.9},
            "RENT_AND_UTILITIES": {"parent": "Bills & Utilities", "child": "Rent & Utilities", "confidence": 0.8}
        }
    """

    def __init__(self, mappings: Mapping[str, Dict[str, Any]]):
        super().__init__()
        self.mappings: Dict[str, ProviderMapping] = {}
        for code, mapping in mappings.items():
            parent = mapping.get("parent")
            if not parent:
                raise ValidationError(f"Provider mapping '{code}' is missing 'parent'")
            confidence = float(mapping.get("confidence", PROVIDER_CONFIDENCE_CAP))
            if not 0 < confidence <= 1:
                raise ValidationError(
                    f"Provider mapping '{code}' confidence must be in (0, 1], got {confidence}"
                )
            self.mappings[code.upper()] = ProviderMapping(
                parent=parent,
                child=mapping.get("child"),
                confidence=min(confidence, PROVIDER_CONFIDENCE_CAP),
            )

    def _lookup(self, context: MatchContext) -> Optional[ProviderMapping]:
        for code in context.provider_codes:
            mapping = self.mappings.get(code.upper())
            if mapping is not None:
                return mapping
        return None

    def _matches(self, context: MatchContext) -> bool:
        return self._lookup(context) is not None

    def _get_match(self, context: MatchContext) -> CategoryMatch:
        mapping = self._lookup(context)
        if mapping is None:
            raise RuntimeError("_get_match called but no match found")

        return CategoryMatch(
            category_parent=mapping.parent,
            category_child=mapping.child,
            confidence=mapping.confidence,
            method=MatchMethod.PROVIDER_FALLBACK,
        )

    def __repr__(self) -> str:
        return f"ProviderCodeRule({len(self.mappings)} codes)"


class DefaultRule(CategorizationRule):
    """
    Fallback rule that always matches.

    Should be the last rule in the chain.
    Returns a low-confidence catch-all category for every input.
    """

    def __init__(
        self,
        parent: str = DEFAULT_PARENT,
        child: Optional[str] = DEFAULT_CHILD,
        confidence: float = DEFAULT_CONFIDENCE,
    ):
        super().__init__()
        self.parent = parent
        self.child = child
        self.confidence = confidence

    def _matches(self, _: MatchContext) -> bool:
        """Always matches"""
        return True

    def _get_match(self, _: MatchContext) -> CategoryMatch:
        return CategoryMatch(
            category_parent=self.parent,
            category_child=self.child,
            confidence=self.confidence,
            method=MatchMethod.DEFAULT,
        )

    def __repr__(self) -> str:
        return f"DefaultRule('{self.parent}', {self.confidence})"
