#!/usr/bin/env python3
"""
Initialize the bookkeeper database.

Creates the schema and seeds the default category tree.
"""
import sys

from bookkeeper.database.connection import DatabaseConfig, DatabaseManager
from bookkeeper.repositories.sqlite_category_repository import SQLiteCategoryRepository
from bookkeeper.services.category_service import CategoryService


def main():
    """Initialize the database."""
    config = DatabaseConfig(sys.argv[1] if len(sys.argv) > 1 else "data/bookkeeper.db")
    print(f"Initializing database at: {config.db_path}")

    with DatabaseManager(config) as db:
        version = db.initialize()
        print(f"✓ Schema version: {version}")

        created = CategoryService(SQLiteCategoryRepository(db)).seed_defaults()
        print(f"✓ Seeded {len(created)} categories")


if __name__ == "__main__":
    main()
