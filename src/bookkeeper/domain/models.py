import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Optional, Pattern, Tuple

from bookkeeper.domain.enums import (
    Cadence,
    Direction,
    MatchMethod,
    TransactionStatus,
)
from bookkeeper.domain.errors import ValidationError


@dataclass(frozen=True)
class ProviderCategory:
    """Category supplied by the upstream data provider. Never mutated here."""
    primary: Optional[str] = None
    detailed: Optional[str] = None
    confidence: Optional[float] = None

    @property
    def codes(self) -> Tuple[str, ...]:
        """Provider codes from most to least specific"""
        return tuple(code for code in (self.detailed, self.primary) if code)


@dataclass(frozen=True)
class AICategory:
    primary: Optional[str] = None
    secondary: Optional[str] = None
    confidence: Optional[float] = None

    @property
    def is_set(self) -> bool:
        return bool(self.primary or self.secondary)


@dataclass(frozen=True)
class UserCategory:
    primary: Optional[str] = None
    secondary: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return bool(self.primary or self.secondary)


@dataclass
class Transaction:
    """
    Core domain model representing a single financial event.

    Amounts are non-negative integer minor units (cents); the sign lives
    in `direction`. The three category slots are independent: the
    provider slot comes from upstream, the AI slot from the matcher and
    the user slot from manual corrections.
    """
    transaction_date: date
    description: str
    amount: int
    direction: Direction
    status: TransactionStatus = TransactionStatus.POSTED
    merchant_name: Optional[str] = None
    account: Optional[str] = None
    provider_category: ProviderCategory = field(default_factory=ProviderCategory)
    ai_category: AICategory = field(default_factory=AICategory)
    user_category: UserCategory = field(default_factory=UserCategory)
    id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValidationError(
                f"Transaction amount must be integer minor units, got {self.amount!r}"
            )
        if self.amount < 0:
            raise ValidationError(
                f"Transaction amount must be a non-negative magnitude, got {self.amount}"
            )

    @property
    def is_outflow(self) -> bool:
        return self.direction == Direction.OUTFLOW

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def signed_amount(self) -> int:
        """Return amount with sign for net calculations"""
        return self.amount if self.direction == Direction.INFLOW else -self.amount

    def __repr__(self):
        sign = "+" if self.direction == Direction.INFLOW else "-"
        label = self.merchant_name or self.description
        return f"Transaction({self.transaction_date}, {label[:30]}, {sign}{self.amount})"


@dataclass(frozen=True)
class Category:
    """Node in the category tree. A null parent means top-level."""
    id: str
    name: str
    parent_category_id: Optional[str] = None
    color: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_category_id is None


@dataclass(frozen=True)
class PatternRule:
    """
    A single ordered categorization rule.

    A rule matches a normalized merchant string when any keyword is a
    case-insensitive substring of it, or any regex pattern searches it,
    and the optional amount guard holds.

    Config format (see config/defaults/rules.json):
        {
            "name": "rent",
            "parent": "Housing",
            "child": "Rent",
            "type": "keyword",            // or "regex"
            "patterns": ["RENT", "LEASE"],
            "confidence": 0.95,
            "min_amount": 50000,          // optional, minor units
            "max_amount": null,           // optional
            "boost_min_amount": 100000,   // optional amount corroboration
            "priority": 10                // optional
        }
    """
    target_parent: str
    target_child: Optional[str] = None
    merchant_keywords: FrozenSet[str] = frozenset()
    regex_patterns: Tuple[str, ...] = ()
    base_confidence: float = 0.8
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None
    boost_min_amount: Optional[int] = None
    priority: Optional[int] = None
    name: Optional[str] = None
    _compiled: Tuple[Pattern, ...] = field(
        default=(), init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not self.target_parent or not str(self.target_parent).strip():
            raise ValidationError(
                f"Pattern rule {self.name or ''!r} is missing a target category"
            )

        keywords = frozenset(
            kw.strip().upper() for kw in self.merchant_keywords if kw and kw.strip()
        )
        object.__setattr__(self, "merchant_keywords", keywords)
        object.__setattr__(self, "regex_patterns", tuple(self.regex_patterns))

        if not keywords and not self.regex_patterns:
            raise ValidationError(
                f"Pattern rule for '{self.target_parent}' has no keywords or patterns"
            )

        if not 0 < self.base_confidence <= 1:
            raise ValidationError(
                f"Rule confidence must be in (0, 1], got {self.base_confidence}"
            )

        for bound in (self.min_amount, self.max_amount, self.boost_min_amount):
            if bound is not None and bound < 0:
                raise ValidationError(f"Rule amount bounds must be non-negative, got {bound}")

        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValidationError(
                f"Rule min_amount {self.min_amount} exceeds max_amount {self.max_amount}"
            )

        try:
            compiled = tuple(re.compile(p, re.IGNORECASE) for p in self.regex_patterns)
        except re.error as e:
            raise ValidationError(f"Invalid regex in rule for '{self.target_parent}': {e}")
        object.__setattr__(self, "_compiled", compiled)

    @classmethod
    def from_dict(cls, rule_def: Dict[str, Any]) -> "PatternRule":
        """Build a rule from its JSON config definition."""
        parent = rule_def.get("parent")
        if not parent:
            raise ValidationError(f"Rule definition is missing 'parent': {rule_def}")

        rule_type = rule_def.get("type", "keyword")
        patterns = rule_def.get("patterns") or []
        if isinstance(patterns, str):
            patterns = [patterns]

        if rule_type == "keyword":
            keywords, regexes = frozenset(patterns), ()
        elif rule_type == "regex":
            keywords, regexes = frozenset(), tuple(patterns)
        else:
            raise ValidationError(f"Unknown rule type '{rule_type}'")

        return cls(
            target_parent=parent,
            target_child=rule_def.get("child"),
            merchant_keywords=keywords,
            regex_patterns=regexes,
            base_confidence=float(rule_def.get("confidence", 0.8)),
            min_amount=rule_def.get("min_amount"),
            max_amount=rule_def.get("max_amount"),
            boost_min_amount=rule_def.get("boost_min_amount"),
            priority=rule_def.get("priority"),
            name=rule_def.get("name"),
        )

    def matches_merchant(self, merchant: str) -> bool:
        merchant_upper = merchant.upper()
        if any(keyword in merchant_upper for keyword in self.merchant_keywords):
            return True
        return any(pattern.search(merchant) for pattern in self._compiled)

    def amount_in_range(self, amount: int) -> bool:
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


@dataclass(frozen=True)
class CategoryMatch:
    """Output of the pattern matcher. Targets are category names."""
    category_parent: str
    category_child: Optional[str]
    confidence: float
    method: MatchMethod
    rule_name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.category_child:
            return f"{self.category_parent} › {self.category_child}"
        return self.category_parent


@dataclass(frozen=True)
class RecurringSeries:
    """A detected cluster of regularly repeating outflows. Advisory only."""
    merchant_key: str
    amount_min: int
    amount_max: int
    cadence: Cadence
    confidence: float
    occurrence_count: int
    last_seen_date: date
    mean_interval_days: float
    typical_amount: int
    next_expected_date: date
    detection_pass: str
    transaction_ids: Tuple[str, ...] = ()

    @property
    def monthly_equivalent(self) -> int:
        """Approximate monthly cost in minor units"""
        factor = {
            Cadence.WEEKLY: 4.33,
            Cadence.BIWEEKLY: 2.17,
            Cadence.MONTHLY: 1.0,
        }[self.cadence]
        return int(round(self.typical_amount * factor))


@dataclass(frozen=True)
class BudgetPeriod:
    start_date: date
    end_date: date
    workspace_id: Optional[str] = None

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValidationError(
                f"Budget period ends ({self.end_date}) before it starts ({self.start_date})"
            )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass
class BudgetLine:
    """
    A budgeted allocation bound to a category.

    `spent` and `remaining` are stored copies of the last recomputation;
    they are always replaced, never incremented.
    """
    id: str
    name: str
    budgeted_amount: int
    category_id: Optional[str] = None
    group: Optional[str] = None
    spent: int = 0
    remaining: int = 0

    def __post_init__(self):
        if self.budgeted_amount < 0:
            raise ValidationError(
                f"Budget line '{self.name}' has negative budgeted amount {self.budgeted_amount}"
            )


@dataclass
class Budget:
    id: str
    name: str
    period: BudgetPeriod
    lines: List[BudgetLine] = field(default_factory=list)


@dataclass(frozen=True)
class BudgetOverride:
    """Manual assignment of a transaction to a budget line, ignoring its category"""
    transaction_id: str
    budget_line_id: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class LearningSignal:
    """A merchant -> category correction recorded for later rule learning"""
    merchant_key: str
    category_id: str
    recorded_at: datetime
    transaction_id: Optional[str] = None
