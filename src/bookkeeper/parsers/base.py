from abc import ABC, abstractmethod
from typing import List

from bookkeeper.domain.models import Transaction


class TransactionSourceParser(ABC):
    """
    Abstract base class for transaction-source adapters.

    Each export format gets its own concrete parser implementing this
    interface. Parsers fill the provider category slot only; the AI and
    user slots are left empty.
    """

    @abstractmethod
    def parse(self, filepath: str) -> List[Transaction]:
        """
        Parse an export file and return a list of transactions.

        Args:
            filepath: Path to the export file

        Returns:
            List of Transaction objects

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is invalid
        """
        pass

    @abstractmethod
    def validate_file(self, filepath: str) -> None:
        """
        Validate that the file matches the expected format.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is invalid
        """
        pass
