"""
Typed errors raised by the categorization engine and its services.

All engine functions either return a fully-resolved result or raise one
of these synchronously.
"""


class BookkeeperError(Exception):
    """Base class for all engine errors."""
    pass


class ValidationError(BookkeeperError):
    """Raised when input is malformed (bad rule, negative amount, ...)."""
    pass


class NotFoundError(BookkeeperError):
    """Raised when a referenced id is absent from the supplied snapshot."""
    pass


class CategoryNotFoundError(NotFoundError):
    """Raised when a category id does not resolve in the taxonomy."""

    def __init__(self, category_id):
        super().__init__(f"Category '{category_id}' not found")
        self.category_id = category_id


class BudgetLineNotFoundError(NotFoundError):
    """Raised when a budget line id does not exist."""

    def __init__(self, budget_line_id):
        super().__init__(f"Budget line '{budget_line_id}' not found")
        self.budget_line_id = budget_line_id


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction cannot be found."""
    pass


class AmbiguousMatchError(BookkeeperError):
    """
    Raised while building a rule set whose ordering is not well defined.

    First-match-wins makes matching itself unambiguous, so this only
    comes up at construction time (e.g. two rules sharing a priority).
    """
    pass
