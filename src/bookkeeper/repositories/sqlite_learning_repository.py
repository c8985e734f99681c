from datetime import datetime
from typing import List

from bookkeeper.database.connection import DatabaseManager
from bookkeeper.domain.models import LearningSignal
from bookkeeper.repositories.base import LearningSignalRepository


class SQLiteLearningSignalRepository(LearningSignalRepository):
    """Append-only store of merchant -> category corrections."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def add(self, signal: LearningSignal) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO learning_signals (merchant_key, category_id, transaction_id, recorded_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    signal.merchant_key,
                    signal.category_id,
                    signal.transaction_id,
                    signal.recorded_at.isoformat(),
                ),
            )

    def get_all(self) -> List[LearningSignal]:
        conn = self.db.get_connection()
        rows = conn.execute("SELECT * FROM learning_signals ORDER BY id").fetchall()
        return [
            LearningSignal(
                merchant_key=row["merchant_key"],
                category_id=row["category_id"],
                recorded_at=datetime.fromisoformat(row["recorded_at"]),
                transaction_id=row["transaction_id"],
            )
            for row in rows
        ]
