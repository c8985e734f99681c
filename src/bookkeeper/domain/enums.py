from enum import Enum

class Direction(Enum):
    """Represents whether money is coming in or out"""
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class TransactionStatus(Enum):
    PENDING = "pending"
    POSTED = "posted"


class CategorySource(Enum):
    """Which category slot produced the displayed category"""
    USER = "user"
    AI = "ai"
    NONE = "none"


class MatchMethod(Enum):
    """How the pattern matcher arrived at a category"""
    MERCHANT_RULE = "merchant_rule"
    PROVIDER_FALLBACK = "provider_fallback"
    DEFAULT = "default"


class Cadence(Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class BudgetStatus(Enum):
    ON_TRACK = "on_track"
    NEAR_LIMIT = "near_limit"
    OVER_BUDGET = "over_budget"


class RecommendationType(Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    ADD_CATEGORY = "add_category"
