import sqlite3
import uuid
from datetime import date, datetime
from typing import List, Optional

from bookkeeper.database.connection import DatabaseManager
from bookkeeper.domain.enums import Direction, TransactionStatus
from bookkeeper.domain.errors import TransactionNotFoundError
from bookkeeper.domain.models import AICategory, ProviderCategory, Transaction, UserCategory
from bookkeeper.repositories.base import DuplicateTransactionError, TransactionRepository

_INSERT = """
    INSERT INTO transactions (
        id, transaction_date, description, merchant_name, amount,
        direction, status, account,
        provider_primary, provider_detailed, provider_confidence,
        ai_primary, ai_secondary, ai_confidence,
        user_primary, user_secondary, user_updated_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class SQLiteTransactionRepository(TransactionRepository):
    """
    SQLite implementation of the TransactionRepository.

    Handles all database operations for transactions using raw SQL.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def save(self, transaction: Transaction) -> Transaction:
        """Save a single transaction."""
        if self.exists(
            transaction.transaction_date,
            transaction.description,
            transaction.amount,
            transaction.account,
        ):
            raise DuplicateTransactionError(
                f"Transaction already exists: {transaction.description} ({transaction.amount}) "
                f"on {transaction.transaction_date}"
            )

        if transaction.id is None:
            transaction.id = str(uuid.uuid4())

        with self.db.transaction() as conn:
            conn.execute(_INSERT, self._to_row(transaction))

        return transaction

    def save_many(self, transactions: List[Transaction]) -> List[Transaction]:
        """Save multiple transactions in one database transaction"""
        saved = []

        with self.db.transaction() as conn:
            for txn in transactions:
                if self.exists(txn.transaction_date, txn.description, txn.amount, txn.account):
                    continue

                if txn.id is None:
                    txn.id = str(uuid.uuid4())
                conn.execute(_INSERT, self._to_row(txn))
                saved.append(txn)

        return saved

    def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        """Retrieve a transaction by ID, or None if it doesn't exist"""
        conn = self.db.get_connection()
        row = conn.execute(
            "SELECT * FROM transactions WHERE id = ?",
            (transaction_id,),
        ).fetchone()

        if row is None:
            return None

        return self._row_to_transaction(row)

    def get_all(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        direction: Optional[Direction] = None,
    ) -> List[Transaction]:
        """Retrieve transactions with optional filtering."""
        query = "SELECT * FROM transactions WHERE 1=1"
        params = []

        if start_date:
            query += " AND transaction_date >= ?"
            params.append(start_date.isoformat())

        if end_date:
            query += " AND transaction_date <= ?"
            params.append(end_date.isoformat())

        if direction:
            query += " AND direction = ?"
            params.append(direction.value)

        query += " ORDER BY transaction_date DESC, id"

        conn = self.db.get_connection()
        rows = conn.execute(query, params).fetchall()

        return [self._row_to_transaction(row) for row in rows]

    def update_categories(self, transaction: Transaction) -> Transaction:
        """Persist the AI and user category slots."""
        if transaction.id is None:
            raise ValueError("Cannot update transaction without ID")

        ai = transaction.ai_category
        user = transaction.user_category

        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET ai_primary = ?, ai_secondary = ?, ai_confidence = ?,
                    user_primary = ?, user_secondary = ?, user_updated_at = ?
                WHERE id = ?
                """,
                (
                    ai.primary,
                    ai.secondary,
                    ai.confidence,
                    user.primary,
                    user.secondary,
                    user.updated_at.isoformat() if user.updated_at else None,
                    transaction.id,
                ),
            )

            if cursor.rowcount == 0:
                raise TransactionNotFoundError(
                    f"Transaction with ID {transaction.id} not found"
                )

        return transaction

    def delete(self, transaction_id: str) -> bool:
        """Delete a transaction by ID."""
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM transactions WHERE id = ?",
                (transaction_id,),
            )
            return cursor.rowcount > 0

    def exists(
        self,
        transaction_date: date,
        description: str,
        amount: int,
        account: Optional[str],
    ) -> bool:
        """Check if a transaction exists for deduplication"""
        conn = self.db.get_connection()
        cursor = conn.execute(
            """
            SELECT 1 FROM transactions
            WHERE transaction_date = ? AND description = ? AND amount = ?
              AND account IS ?
            """,
            (transaction_date.isoformat(), description, amount, account),
        )
        return cursor.fetchone() is not None

    def _to_row(self, txn: Transaction) -> tuple:
        provider = txn.provider_category
        ai = txn.ai_category
        user = txn.user_category
        return (
            txn.id,
            txn.transaction_date.isoformat(),
            txn.description,
            txn.merchant_name,
            txn.amount,
            txn.direction.value,
            txn.status.value,
            txn.account,
            provider.primary,
            provider.detailed,
            provider.confidence,
            ai.primary,
            ai.secondary,
            ai.confidence,
            user.primary,
            user.secondary,
            user.updated_at.isoformat() if user.updated_at else None,
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> Transaction:
        """Convert database row to Transaction object."""
        updated_at = row["user_updated_at"]
        return Transaction(
            id=row["id"],
            transaction_date=date.fromisoformat(row["transaction_date"]),
            description=row["description"],
            merchant_name=row["merchant_name"],
            amount=row["amount"],
            direction=Direction(row["direction"]),
            status=TransactionStatus(row["status"]),
            account=row["account"],
            provider_category=ProviderCategory(
                primary=row["provider_primary"],
                detailed=row["provider_detailed"],
                confidence=row["provider_confidence"],
            ),
            ai_category=AICategory(
                primary=row["ai_primary"],
                secondary=row["ai_secondary"],
                confidence=row["ai_confidence"],
            ),
            user_category=UserCategory(
                primary=row["user_primary"],
                secondary=row["user_secondary"],
                updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            ),
        )
