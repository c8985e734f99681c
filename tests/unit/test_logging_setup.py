import logging

import pytest

from bookkeeper.logging_setup import _resolve_level, get_logger


@pytest.mark.unit
class TestLoggingSetup:

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("BOOKKEEPER_LOG_LEVEL", "error")

        assert _resolve_level(logging.DEBUG) == logging.DEBUG

    @pytest.mark.parametrize("env_value,expected", [
        ("info", logging.INFO),
        (" DEBUG ", logging.DEBUG),
        ("chatty", logging.WARNING),
        ("", logging.WARNING),
    ])
    def test_level_from_environment(self, monkeypatch, env_value, expected):
        monkeypatch.setenv("BOOKKEEPER_LOG_LEVEL", env_value)

        assert _resolve_level(None) == expected

    def test_get_logger_is_namespaced(self):
        logger = get_logger("bookkeeper.services.learning")

        assert logger.name == "bookkeeper.services.learning"
        assert logging.getLogger("bookkeeper").handlers
