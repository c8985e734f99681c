import pytest

from bookkeeper.categorization.base import MatchContext
from bookkeeper.categorization.rules import (
    DefaultRule,
    PatternRuleSet,
    ProviderCodeRule,
    load_rules,
    order_rules,
)
from bookkeeper.domain.enums import MatchMethod
from bookkeeper.domain.errors import AmbiguousMatchError, ValidationError
from bookkeeper.domain.models import PatternRule


def keyword_rule(parent, *keywords, **kwargs) -> PatternRule:
    return PatternRule(target_parent=parent, merchant_keywords=frozenset(keywords), **kwargs)


@pytest.mark.unit
class TestPatternRule:

    def test_keywords_are_case_insensitive_substrings(self):
        rule = keyword_rule("Food & Dining", "coffee")

        assert rule.merchant_keywords == frozenset({"COFFEE"})
        assert rule.matches_merchant("BLUE BOTTLE COFFEE")
        assert not rule.matches_merchant("BLUE BOTTLE")

    def test_regex_patterns(self):
        rule = PatternRule(target_parent="Housing", regex_patterns=(r"\bRENT\b",))

        assert rule.matches_merchant("MONTHLY RENT PAYMENT")
        assert not rule.matches_merchant("RENTAL CAR")

    def test_amount_guard(self):
        rule = keyword_rule("Housing", "MGMT", min_amount=50000, max_amount=300000)

        assert not rule.amount_in_range(49999)
        assert rule.amount_in_range(50000)
        assert rule.amount_in_range(300000)
        assert not rule.amount_in_range(300001)

    @pytest.mark.parametrize("kwargs", [
        {"target_parent": "", "merchant_keywords": frozenset({"X"})},
        {"target_parent": "Food"},
        {"target_parent": "Food", "merchant_keywords": frozenset({"X"}), "base_confidence": 0},
        {"target_parent": "Food", "merchant_keywords": frozenset({"X"}), "base_confidence": 1.5},
        {"target_parent": "Food", "merchant_keywords": frozenset({"X"}), "min_amount": -1},
        {"target_parent": "Food", "merchant_keywords": frozenset({"X"}), "min_amount": 10, "max_amount": 5},
        {"target_parent": "Food", "regex_patterns": ("(unclosed",)},
    ])
    def test_malformed_rules_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            PatternRule(**kwargs)

    def test_from_dict(self):
        rule = PatternRule.from_dict({
            "name": "rent",
            "parent": "Housing",
            "child": "Rent",
            "type": "regex",
            "patterns": "\\bLEASE\\b",
            "confidence": 0.95,
            "boost_min_amount": 100000,
        })

        assert rule.regex_patterns == ("\\bLEASE\\b",)
        assert rule.target_child == "Rent"
        assert rule.boost_min_amount == 100000

    def test_from_dict_unknown_type(self):
        with pytest.raises(ValidationError):
            PatternRule.from_dict({"parent": "Housing", "type": "fuzzy", "patterns": ["X"]})


@pytest.mark.unit
class TestRuleOrdering:

    def test_prioritized_rules_first_then_listed_order(self):
        # Arrange
        a = keyword_rule("A", "A")
        b = keyword_rule("B", "B", priority=20)
        c = keyword_rule("C", "C")
        d = keyword_rule("D", "D", priority=10)

        # Act
        ordered = order_rules([a, b, c, d])

        # Assert
        assert [r.target_parent for r in ordered] == ["D", "B", "A", "C"]

    def test_shared_priority_is_ambiguous(self):
        with pytest.raises(AmbiguousMatchError):
            order_rules([keyword_rule("A", "A", priority=1), keyword_rule("B", "B", priority=1)])

    def test_load_rules_rejects_malformed_definition(self):
        with pytest.raises(ValidationError):
            load_rules([{"parent": "A", "patterns": []}])


@pytest.mark.unit
class TestRuleChain:

    def test_first_matching_rule_wins(self):
        rules = PatternRuleSet([
            keyword_rule("Food & Dining", "STARBUCKS", base_confidence=0.9),
            keyword_rule("Shopping", "STARBUCKS"),
        ])

        match = rules.categorize(MatchContext("STARBUCKS", 450))

        assert match.category_parent == "Food & Dining"
        assert match.method == MatchMethod.MERCHANT_RULE

    def test_amount_boost(self):
        rules = PatternRuleSet([
            keyword_rule("Housing", "RENT", base_confidence=0.85, boost_min_amount=100000),
        ])

        assert rules.categorize(MatchContext("RENT", 99999)).confidence == 0.85
        assert rules.categorize(MatchContext("RENT", 100000)).confidence == 0.95

    def test_boost_never_exceeds_one(self):
        rules = PatternRuleSet([
            keyword_rule("Housing", "RENT", base_confidence=0.95, boost_min_amount=0),
        ])

        assert rules.categorize(MatchContext("RENT", 100)).confidence == 1.0

    def test_miss_passes_to_next_rule(self):
        # Arrange
        rules = PatternRuleSet([keyword_rule("Food", "COFFEE")])
        rules.set_next(DefaultRule())

        # Act
        match = rules.categorize(MatchContext("HARDWARE STORE", 2000))

        # Assert
        assert match.method == MatchMethod.DEFAULT
        assert match.confidence == 0.3

    def test_end_of_chain_returns_none(self):
        rules = PatternRuleSet([keyword_rule("Food", "COFFEE")])

        assert rules.categorize(MatchContext("HARDWARE STORE", 2000)) is None

    def test_provider_confidence_is_capped(self):
        rule = ProviderCodeRule({
            "FOOD_AND_DRINK_COFFEE": {"parent": "Food & Dining", "child": "Coffee & Tea", "confidence": 0.9},
        })

        match = rule.categorize(MatchContext("ZZZ", 450, ("food_and_drink_coffee",)))

        assert match.confidence == 0.8
        assert match.method == MatchMethod.PROVIDER_FALLBACK

    @pytest.mark.parametrize("mapping", [
        {"child": "Coffee & Tea"},
        {"parent": "Food & Dining", "confidence": 0},
    ])
    def test_malformed_provider_mapping(self, mapping):
        with pytest.raises(ValidationError):
            ProviderCodeRule({"CODE": mapping})
