from typing import Dict, Iterable, Iterator, List, Optional

from bookkeeper.domain.errors import CategoryNotFoundError, ValidationError
from bookkeeper.domain.models import Category

# root -> parent -> leaf
MAX_DEPTH = 2


class CategoryTaxonomy:
    """
    Read-only snapshot of the category tree.

    Built once per call from whatever the category source returned and
    validated up front: ids are unique, parents exist, there are no
    cycles and no node sits deeper than MAX_DEPTH below its root.

    Usage:
        taxonomy = CategoryTaxonomy(categories)
        rent = taxonomy.find_child("Housing", "Rent")
        taxonomy.parent_of(rent.id)
    """

    def __init__(self, categories: Iterable[Category]):
        self._by_id: Dict[str, Category] = {}
        self._children: Dict[str, List[Category]] = {}

        for category in categories:
            if category.id in self._by_id:
                raise ValidationError(f"Duplicate category id '{category.id}'")
            self._by_id[category.id] = category

        for category in self._by_id.values():
            parent_id = category.parent_category_id
            if parent_id is None:
                continue
            if parent_id not in self._by_id:
                raise ValidationError(
                    f"Category '{category.name}' references missing parent '{parent_id}'"
                )
            self._children.setdefault(parent_id, []).append(category)

        for category in self._by_id.values():
            if self._depth(category) > MAX_DEPTH:
                raise ValidationError(
                    f"Category '{category.name}' is nested deeper than {MAX_DEPTH} levels"
                )

    def _depth(self, category: Category) -> int:
        depth = 0
        seen = {category.id}
        current = category
        while current.parent_category_id is not None:
            current = self._by_id[current.parent_category_id]
            if current.id in seen:
                raise ValidationError(f"Category cycle through '{current.name}'")
            seen.add(current.id)
            depth += 1
        return depth

    def get(self, category_id: Optional[str]) -> Optional[Category]:
        """Return the category, or None if the id is unknown."""
        if category_id is None:
            return None
        return self._by_id.get(category_id)

    def require(self, category_id: str) -> Category:
        """
        Return the category for an id.

        Raises:
            CategoryNotFoundError: If the id is not in this snapshot
        """
        category = self.get(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    def parent_of(self, category_id: str) -> Optional[Category]:
        category = self.require(category_id)
        return self.get(category.parent_category_id)

    def children_of(self, category_id: str) -> List[Category]:
        return list(self._children.get(category_id, []))

    def has_children(self, category_id: str) -> bool:
        return bool(self._children.get(category_id))

    def ancestors_of(self, category_id: str) -> List[Category]:
        """Ancestors from the direct parent up to the root."""
        ancestors = []
        parent = self.parent_of(category_id)
        while parent is not None:
            ancestors.append(parent)
            parent = self.get(parent.parent_category_id)
        return ancestors

    def depth_of(self, category_id: str) -> int:
        return len(self.ancestors_of(category_id))

    def roots(self) -> List[Category]:
        return [c for c in self._by_id.values() if c.is_root]

    def find_by_name(self, name: str, parent_id: Optional[str] = None) -> Optional[Category]:
        """
        Find a category by case-insensitive name under a given parent.

        Args:
            name: Category name
            parent_id: Parent to search under; None searches top-level categories

        Returns:
            The category, or None if not found
        """
        wanted = name.strip().lower()
        if parent_id is None:
            candidates = self.roots()
        else:
            candidates = self._children.get(parent_id, [])

        for category in candidates:
            if category.name.lower() == wanted:
                return category
        return None

    def find_all_by_name(self, name: str) -> List[Category]:
        """Every category with this name at any level, shallowest first."""
        wanted = name.strip().lower()
        matches = [c for c in self._by_id.values() if c.name.lower() == wanted]
        return sorted(matches, key=self._depth)

    def find_child(self, parent_name: str, child_name: str) -> Optional[Category]:
        """Find `child_name` under the top-level category `parent_name`."""
        parent = self.find_by_name(parent_name)
        if parent is None:
            return None
        return self.find_by_name(child_name, parent_id=parent.id)

    def path_names(self, category_id: str) -> List[str]:
        """Names from root to the category, e.g. ['Housing', 'Rent']."""
        category = self.require(category_id)
        names = [a.name for a in reversed(self.ancestors_of(category_id))]
        names.append(category.name)
        return names

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._by_id

    def __iter__(self) -> Iterator[Category]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __repr__(self) -> str:
        return f"CategoryTaxonomy({len(self)} categories, {len(self.roots())} roots)"
