from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

import pandas as pd

from bookkeeper.domain.enums import Direction, TransactionStatus
from bookkeeper.domain.models import ProviderCategory, Transaction
from bookkeeper.logging_setup import get_logger
from bookkeeper.parsers.base import TransactionSourceParser

logger = get_logger(__name__)

_TRUE_VALUES = {"true", "t", "1", "yes", "y"}


class AggregatorCSVParser(TransactionSourceParser):
    """
    Parser for bank-data aggregator CSV exports.

    Handles the export format with:
    - Signed decimal amounts, positive = money out
    - A pending flag
    - Provider category columns (primary, detailed, confidence)
    """

    DATE_COL = "date"
    DESCRIPTION_COL = "name"
    AMOUNT_COL = "amount"
    MERCHANT_COL = "merchant_name"
    PENDING_COL = "pending"
    ACCOUNT_COL = "account"
    CATEGORY_PRIMARY_COL = "category_primary"
    CATEGORY_DETAILED_COL = "category_detailed"
    CATEGORY_CONFIDENCE_COL = "category_confidence"

    REQUIRED_COLUMNS = [DATE_COL, DESCRIPTION_COL, AMOUNT_COL]

    def __init__(self, account: Optional[str] = None):
        self.default_account = account
        self.skipped_rows = 0

    def validate_file(self, filepath: str) -> None:
        """Check the file exists, is a CSV and carries the required columns."""
        path = Path(filepath)

        if not path.exists():
            raise FileNotFoundError(f"File does not exist on path {path}")

        if path.suffix.lower() != ".csv":
            raise ValueError(f"File must be .csv, got {path.suffix}")

        try:
            header = pd.read_csv(filepath, nrows=0)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise ValueError(f"Could not read CSV header: {e}")

        columns = [str(c).strip().lower() for c in header.columns]
        missing = [col for col in self.REQUIRED_COLUMNS if col not in columns]
        if missing:
            raise ValueError(
                f"Missing required columns: {missing}. "
                f"Available columns: {columns}"
            )

    def parse(self, filepath: str) -> List[Transaction]:
        """
        Parse an aggregator export.

        Rows that can't be parsed are skipped with a warning and counted
        in `skipped_rows`.
        """
        self.validate_file(filepath)

        try:
            df = pd.read_csv(filepath, dtype=str)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ValueError(f"Failed to read CSV file: {e}")

        df.columns = [str(c).strip().lower() for c in df.columns]

        self.skipped_rows = 0
        transactions = []
        for index, row in df.iterrows():
            try:
                transactions.append(self._parse_row(row))
            except (ValueError, InvalidOperation) as e:
                self.skipped_rows += 1
                logger.warning("Skipping row %s of %s: %s", index, filepath, e)

        logger.debug(
            "Parsed %d transactions from %s (%d rows skipped)",
            len(transactions), filepath, self.skipped_rows,
        )
        return transactions

    def _cell(self, row: pd.Series, column: str) -> Optional[str]:
        value = row.get(column)
        if value is None or pd.isna(value):
            return None
        value = str(value).strip()
        return value or None

    def _parse_amount(self, raw: Optional[str]) -> Decimal:
        if raw is None:
            raise ValueError("missing amount")
        cleaned = raw.replace("$", "").replace(",", "").strip()
        # Accounting negatives: (12.50)
        if cleaned.startswith("(") and cleaned.endswith(")"):
            cleaned = "-" + cleaned[1:-1]
        return Decimal(cleaned)

    def _parse_row(self, row: pd.Series) -> Transaction:
        raw_date = self._cell(row, self.DATE_COL)
        if raw_date is None:
            raise ValueError("missing date")
        transaction_date = pd.to_datetime(raw_date).date()

        description = self._cell(row, self.DESCRIPTION_COL)
        if description is None:
            raise ValueError("missing description")

        signed = self._parse_amount(self._cell(row, self.AMOUNT_COL))
        cents = int((abs(signed) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        direction = Direction.OUTFLOW if signed >= 0 else Direction.INFLOW

        pending = (self._cell(row, self.PENDING_COL) or "").lower() in _TRUE_VALUES

        confidence = self._cell(row, self.CATEGORY_CONFIDENCE_COL)

        return Transaction(
            transaction_date=transaction_date,
            description=description,
            amount=cents,
            direction=direction,
            status=TransactionStatus.PENDING if pending else TransactionStatus.POSTED,
            merchant_name=self._cell(row, self.MERCHANT_COL),
            account=self._cell(row, self.ACCOUNT_COL) or self.default_account,
            provider_category=ProviderCategory(
                primary=self._cell(row, self.CATEGORY_PRIMARY_COL),
                detailed=self._cell(row, self.CATEGORY_DETAILED_COL),
                confidence=float(confidence) if confidence else None,
            ),
        )
