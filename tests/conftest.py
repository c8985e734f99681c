import os

# Keep Rich console output unwrapped so CLI assertions do not depend on terminal width
os.environ.setdefault("COLUMNS", "200")

from datetime import date
from typing import List

import pytest

from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.config.settings import ConfigLoader
from bookkeeper.domain.enums import Direction, TransactionStatus
from bookkeeper.domain.models import Category, Transaction
from bookkeeper.services.category_service import slugify


@pytest.fixture
def nested_taxonomy() -> CategoryTaxonomy:
    """
    Three-level tree:

        Housing -> Utilities -> Electricity
                             -> Water
                -> Rent
        Food    -> Groceries
        Travel  -> Utilities (same name, different branch)
    """
    return CategoryTaxonomy([
        Category("housing", "Housing"),
        Category("utilities", "Utilities", parent_category_id="housing"),
        Category("electricity", "Electricity", parent_category_id="utilities"),
        Category("water", "Water", parent_category_id="utilities"),
        Category("rent", "Rent", parent_category_id="housing"),
        Category("food", "Food"),
        Category("groceries", "Groceries", parent_category_id="food"),
        Category("travel", "Travel"),
        Category("travel-utilities", "Utilities", parent_category_id="travel"),
    ])


@pytest.fixture
def seed_categories() -> List[Category]:
    """The packaged seed tree, with the same ids seeding produces"""
    config = ConfigLoader.load_default_config("taxonomy.json")
    categories = []
    for root_def in config["categories"]:
        root_id = slugify(root_def["name"])
        categories.append(Category(root_id, root_def["name"]))
        for child in root_def["children"]:
            categories.append(
                Category(f"{root_id}-{slugify(child)}", child, parent_category_id=root_id)
            )
    return categories


@pytest.fixture
def seed_taxonomy(seed_categories) -> CategoryTaxonomy:
    return CategoryTaxonomy(seed_categories)


@pytest.fixture
def make_transaction():
    """Factory for transactions with sensible defaults"""
    counter = {"n": 0}

    def _make(
        description: str = "TEST MERCHANT",
        amount: int = 1000,
        transaction_date: date = date(2025, 1, 15),
        direction: Direction = Direction.OUTFLOW,
        status: TransactionStatus = TransactionStatus.POSTED,
        **kwargs,
    ) -> Transaction:
        counter["n"] += 1
        kwargs.setdefault("id", f"txn-{counter['n']}")
        return Transaction(
            transaction_date=transaction_date,
            description=description,
            amount=amount,
            direction=direction,
            status=status,
            **kwargs,
        )

    return _make
