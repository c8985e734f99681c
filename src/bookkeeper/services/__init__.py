from bookkeeper.services.budget_service import BudgetService
from bookkeeper.services.category_cache import CategoryCache
from bookkeeper.services.category_service import CategoryService
from bookkeeper.services.learning import RepositoryLearningSink, build_learned_rules
from bookkeeper.services.models import ImportResult
from bookkeeper.services.transaction_service import TransactionService

__all__ = [
    "BudgetService",
    "CategoryCache",
    "CategoryService",
    "ImportResult",
    "RepositoryLearningSink",
    "TransactionService",
    "build_learned_rules",
]
