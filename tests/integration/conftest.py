import pytest

from bookkeeper.database.connection import DatabaseConfig, DatabaseManager


@pytest.fixture
def test_db(tmp_path):
    """
    Create a real test database with the packaged schema.

    Lives in pytest's tmp_path, so each test gets a fresh file.
    """
    db_manager = DatabaseManager(DatabaseConfig(tmp_path / "test.db"))
    db_manager.initialize()

    yield db_manager

    db_manager.close()
