import sqlite3
from typing import List

from bookkeeper.database.connection import DatabaseManager
from bookkeeper.domain.models import Category
from bookkeeper.repositories.base import CategoryRepository


class SQLiteCategoryRepository(CategoryRepository):
    """SQLite category source. Deleting a category also deletes its children."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def get_all(self) -> List[Category]:
        conn = self.db.get_connection()
        rows = conn.execute(
            "SELECT * FROM categories ORDER BY parent_category_id IS NOT NULL, name"
        ).fetchall()
        return [self._row_to_category(row) for row in rows]

    def save(self, category: Category) -> Category:
        """Insert or replace a category by id."""
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO categories (id, name, parent_category_id, color)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    parent_category_id = excluded.parent_category_id,
                    color = excluded.color
                """,
                (category.id, category.name, category.parent_category_id, category.color),
            )
        return category

    def delete(self, category_id: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
            return cursor.rowcount > 0

    def _row_to_category(self, row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            parent_category_id=row["parent_category_id"],
            color=row["color"],
        )
