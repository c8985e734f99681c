import sqlite3
import uuid
from datetime import date
from typing import List, Optional

from bookkeeper.database.connection import DatabaseManager
from bookkeeper.domain.errors import BudgetLineNotFoundError, NotFoundError
from bookkeeper.domain.models import Budget, BudgetLine, BudgetOverride, BudgetPeriod
from bookkeeper.repositories.base import BudgetRepository


class SQLiteBudgetRepository(BudgetRepository):
    """SQLite storage for budgets, their lines and transaction overrides."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def save_budget(self, budget: Budget) -> Budget:
        """Insert or update a budget and all of its lines."""
        if not budget.id:
            budget.id = str(uuid.uuid4())

        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO budgets (id, name, start_date, end_date, workspace_id)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    start_date = excluded.start_date,
                    end_date = excluded.end_date,
                    workspace_id = excluded.workspace_id
                """,
                (
                    budget.id,
                    budget.name,
                    budget.period.start_date.isoformat(),
                    budget.period.end_date.isoformat(),
                    budget.period.workspace_id,
                ),
            )
            for position, line in enumerate(budget.lines):
                self._upsert_line(conn, budget.id, line, position)

        return budget

    def get_budget(self, budget_id: str) -> Optional[Budget]:
        conn = self.db.get_connection()
        row = conn.execute("SELECT * FROM budgets WHERE id = ?", (budget_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_budget(row)

    def list_budgets(self) -> List[Budget]:
        conn = self.db.get_connection()
        rows = conn.execute("SELECT * FROM budgets ORDER BY start_date DESC, name").fetchall()
        return [self._row_to_budget(row) for row in rows]

    def save_line(self, budget_id: str, line: BudgetLine) -> BudgetLine:
        """
        Insert or update a single line. New lines go after existing ones.

        Raises:
            NotFoundError: If the budget doesn't exist
        """
        if self.get_budget(budget_id) is None:
            raise NotFoundError(f"Budget '{budget_id}' not found")

        if not line.id:
            line.id = str(uuid.uuid4())

        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(position) + 1, 0) AS next FROM budget_lines WHERE budget_id = ?",
                (budget_id,),
            ).fetchone()
            self._upsert_line(conn, budget_id, line, row["next"])

        return line

    def update_line_totals(self, lines: List[BudgetLine]) -> None:
        with self.db.transaction() as conn:
            for line in lines:
                cursor = conn.execute(
                    "UPDATE budget_lines SET spent = ?, remaining = ? WHERE id = ?",
                    (line.spent, line.remaining, line.id),
                )
                if cursor.rowcount == 0:
                    raise BudgetLineNotFoundError(line.id)

    def save_override(self, budget_id: str, override: BudgetOverride) -> BudgetOverride:
        """Assign a transaction to a line, replacing any earlier override in this budget."""
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO budget_overrides (budget_id, transaction_id, budget_line_id, reason)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(budget_id, transaction_id) DO UPDATE SET
                    budget_line_id = excluded.budget_line_id,
                    reason = excluded.reason
                """,
                (budget_id, override.transaction_id, override.budget_line_id, override.reason),
            )
        return override

    def get_overrides(self, budget_id: str) -> List[BudgetOverride]:
        conn = self.db.get_connection()
        rows = conn.execute(
            "SELECT * FROM budget_overrides WHERE budget_id = ? ORDER BY transaction_id",
            (budget_id,),
        ).fetchall()
        return [
            BudgetOverride(
                transaction_id=row["transaction_id"],
                budget_line_id=row["budget_line_id"],
                reason=row["reason"],
            )
            for row in rows
        ]

    def _upsert_line(
        self,
        conn: sqlite3.Connection,
        budget_id: str,
        line: BudgetLine,
        position: int,
    ) -> None:
        if not line.id:
            line.id = str(uuid.uuid4())
        conn.execute(
            """
            INSERT INTO budget_lines (
                id, budget_id, name, category_id, group_name,
                budgeted_amount, spent, remaining, position
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                category_id = excluded.category_id,
                group_name = excluded.group_name,
                budgeted_amount = excluded.budgeted_amount,
                spent = excluded.spent,
                remaining = excluded.remaining
            """,
            (
                line.id,
                budget_id,
                line.name,
                line.category_id,
                line.group,
                line.budgeted_amount,
                line.spent,
                line.remaining,
                position,
            ),
        )

    def _row_to_budget(self, row: sqlite3.Row) -> Budget:
        conn = self.db.get_connection()
        line_rows = conn.execute(
            "SELECT * FROM budget_lines WHERE budget_id = ? ORDER BY position, id",
            (row["id"],),
        ).fetchall()
        return Budget(
            id=row["id"],
            name=row["name"],
            period=BudgetPeriod(
                start_date=date.fromisoformat(row["start_date"]),
                end_date=date.fromisoformat(row["end_date"]),
                workspace_id=row["workspace_id"],
            ),
            lines=[
                BudgetLine(
                    id=line_row["id"],
                    name=line_row["name"],
                    budgeted_amount=line_row["budgeted_amount"],
                    category_id=line_row["category_id"],
                    group=line_row["group_name"],
                    spent=line_row["spent"],
                    remaining=line_row["remaining"],
                )
                for line_row in line_rows
            ],
        )
