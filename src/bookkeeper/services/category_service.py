import re
from typing import Any, Dict, List, Optional

from bookkeeper.categorization.taxonomy import CategoryTaxonomy
from bookkeeper.config.settings import ConfigLoader
from bookkeeper.domain.errors import ValidationError
from bookkeeper.domain.models import Category
from bookkeeper.logging_setup import get_logger
from bookkeeper.repositories.base import CategoryRepository
from bookkeeper.services.category_cache import DEFAULT_TTL_SECONDS, CategoryCache

logger = get_logger(__name__)


def slugify(name: str) -> str:
    """'Bills & Utilities' -> 'bills-utilities'"""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    if not slug:
        raise ValidationError(f"Category name {name!r} has no usable characters")
    return slug


class CategoryService:
    """
    Owns the category source and its cache.

    Every mutation goes through here so the cache is invalidated
    exactly when the tree changes.
    """

    def __init__(
        self,
        repository: CategoryRepository,
        cache: Optional[CategoryCache] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        self.repository = repository
        self.cache = cache or CategoryCache(repository.get_all, ttl_seconds=ttl_seconds)

    def get_taxonomy(self) -> CategoryTaxonomy:
        return self.cache.get()

    def add_category(
        self,
        name: str,
        parent_id: Optional[str] = None,
        color: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> Category:
        """
        Add a category.

        The id defaults to the name's slug, prefixed by the parent id for
        child categories. The resulting tree is validated before saving.

        Raises:
            CategoryNotFoundError: If the parent doesn't exist
            ValidationError: If the id is taken or the tree would be too deep
        """
        taxonomy = self.get_taxonomy()
        if parent_id is not None:
            taxonomy.require(parent_id)

        if category_id is None:
            category_id = slugify(name) if parent_id is None else f"{parent_id}-{slugify(name)}"

        category = Category(
            id=category_id,
            name=name.strip(),
            parent_category_id=parent_id,
            color=color,
        )
        CategoryTaxonomy(list(taxonomy) + [category])

        self.repository.save(category)
        self.cache.invalidate()
        logger.info("Added category %s", category.id)
        return category

    def delete_category(self, category_id: str) -> bool:
        """Delete a category and its children. Transactions keep their references."""
        deleted = self.repository.delete(category_id)
        self.cache.invalidate()
        return deleted

    def seed_defaults(self, config: Optional[Dict[str, Any]] = None) -> List[Category]:
        """
        Create the seed category tree, skipping categories that exist.

        Args:
            config: Optional taxonomy config dict. If None, loads taxonomy.json.

        Returns:
            The categories that were created
        """
        if config is None:
            config = ConfigLoader.load_taxonomy_config()

        existing = {c.id for c in self.get_taxonomy()}
        created = []

        for root_def in config.get("categories", []):
            root = Category(
                id=slugify(root_def["name"]),
                name=root_def["name"],
                color=root_def.get("color"),
            )
            if root.id not in existing:
                created.append(root)
                existing.add(root.id)

            for child_def in root_def.get("children", []):
                child_name = child_def if isinstance(child_def, str) else child_def["name"]
                child = Category(
                    id=f"{root.id}-{slugify(child_name)}",
                    name=child_name,
                    parent_category_id=root.id,
                    color=root_def.get("color"),
                )
                if child.id not in existing:
                    created.append(child)
                    existing.add(child.id)

        CategoryTaxonomy(list(self.get_taxonomy()) + created)

        for category in created:
            self.repository.save(category)
        self.cache.invalidate()

        logger.info("Seeded %d categories", len(created))
        return created
