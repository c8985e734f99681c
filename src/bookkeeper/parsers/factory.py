import importlib
from typing import Any, Dict, List, Optional, Type

from bookkeeper.config.settings import ConfigLoader
from bookkeeper.logging_setup import get_logger
from bookkeeper.parsers.base import TransactionSourceParser

logger = get_logger(__name__)


class ParserFactory:
    """
    Factory for creating transaction-source parsers.

    Uses a registry mapping source identifiers to parser classes.
    """

    _locked = False
    _registry: Dict[str, Type[TransactionSourceParser]] = {}

    @classmethod
    def register(cls, source: str, parser_class: Type[TransactionSourceParser]) -> None:
        """
        Register a parser for a transaction source

        Args:
            source: Unique identifier for the source (e.g, 'aggregator-csv')
            parser_class: The parser class

        Raises:
            ValueError: If parser is already registered
            TypeError: If parser_class doesn't inherit from TransactionSourceParser
            RuntimeError: If the parser registry is locked

        Example:
            ParserFactory.register('aggregator-csv', AggregatorCSVParser)
        """
        if cls._locked:
            raise RuntimeError("Registry is locked, cannot add more parsers")

        if source in cls._registry:
            raise ValueError(f"Parser for '{source}' is already registered")

        if not issubclass(parser_class, TransactionSourceParser):
            raise TypeError(f"{parser_class} must inherit from TransactionSourceParser")

        cls._registry[source] = parser_class

    @classmethod
    def lock_registry(cls):
        """Prevent further registration (call after app initialization)"""
        cls._locked = True

    @classmethod
    def is_loaded(cls) -> bool:
        return cls._locked

    @classmethod
    def create_parser(cls, source: str) -> TransactionSourceParser:
        """
        Create a parser instance for the specified source.

        Raises:
            ValueError: If no parser registered for this source

        Example:
            parser = ParserFactory.create_parser('aggregator-csv')
            transactions = parser.parse('export.csv')
        """
        if source not in cls._registry:
            available = ', '.join(cls._registry.keys())
            raise ValueError(
                f"No parser registered for '{source}'. "
                f"Available parsers: {available}"
            )

        return cls._registry[source]()

    @classmethod
    def get_available_sources(cls) -> List[str]:
        """Return list of all registered source identifiers"""
        return list(cls._registry.keys())

    @classmethod
    def load_parsers_from_config(
        cls,
        config: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Load and register parsers from configuration

        Args:
            config: Optional config dict. If None, loads from ConfigLoader.
                Useful for testing with custom configs.

        Example (testing):
            test_config = {"parsers": [...]}
            ParserFactory.load_parsers_from_config(config=test_config)
        """
        if config is None:
            config = ConfigLoader.load_parsers_config()

        for parser_config in config['parsers']:
            module_path, class_name = str(parser_config['class']).rsplit('.', 1)
            module = importlib.import_module(module_path)
            parser_class = getattr(module, class_name)

            cls.register(parser_config['source'], parser_class)
            logger.debug("Registered parser %s for %s", class_name, parser_config['source'])

        cls.lock_registry()
