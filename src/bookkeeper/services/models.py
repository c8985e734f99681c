"""
Service layer models - DTOs for service operations.

These models represent the results of service operations, not domain entities.
"""
from dataclasses import dataclass, field
from typing import List

from bookkeeper.domain.models import Transaction


@dataclass
class ImportResult:
    """
    Result of importing a transaction-source file.

    - How many transactions were parsed
    - Which ones were new vs duplicates
    - How many rows could not be parsed
    """
    total_parsed: int
    new_transactions: int
    duplicates_skipped: int
    errors: int = 0

    imported: List[Transaction] = field(default_factory=list)
    skipped: List[Transaction] = field(default_factory=list)

    filepath: str = ""
    source: str = ""
    dry_run: bool = False

    @property
    def success(self) -> bool:
        """Import is successful if at least one transaction is imported"""
        return self.new_transactions > 0

    @property
    def partial_success(self) -> bool:
        """Some transactions imported but some rows failed"""
        return self.new_transactions > 0 and self.errors > 0

    def __str__(self) -> str:
        lines = [
            f"Import summary for {self.source}{' (dry run)' if self.dry_run else ''}:",
            f"  File: {self.filepath}",
            f"  New transactions: {self.new_transactions}",
            f"  Duplicates skipped: {self.duplicates_skipped}",
        ]

        if self.errors:
            lines.append(f"  Rows with errors: {self.errors}")

        return "\n".join(lines)

    def __post_init__(self):
        """Validate counts match lists"""
        if self.new_transactions != len(self.imported):
            raise ValueError(
                f"Count mismatch: new_transactions={self.new_transactions} "
                f"but len(imported)={len(self.imported)}"
            )
        if self.duplicates_skipped != len(self.skipped):
            raise ValueError(
                f"Count mismatch: duplicates_skipped={self.duplicates_skipped} "
                f"but len(skipped)={len(self.skipped)}"
            )
