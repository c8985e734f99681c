import pytest
from pathlib import Path
from typer.testing import CliRunner

from bookkeeper.cli import app
from bookkeeper.parsers.factory import ParserFactory

runner = CliRunner()

EXPORT = (
    "date,name,amount,merchant_name,pending,account\n"
    "2025-01-01,ACME PROPERTY MGMT,1200.00,,false,checking\n"
    "2025-01-06,STARBUCKS STORE 0042,4.50,Starbucks,false,checking\n"
    "2025-01-13,STARBUCKS STORE 0042,4.50,Starbucks,false,checking\n"
)


@pytest.fixture
def db_args(tmp_path: Path):
    """Global options pointing the CLI at a fresh, seeded database"""
    args = ["--db", str(tmp_path / "cli.db")]
    runner.invoke(app, args + ["init-db"])
    runner.invoke(app, args + ["seed-categories"])
    return args


@pytest.fixture
def export_file(tmp_path: Path) -> Path:
    path = tmp_path / "export.csv"
    path.write_text(EXPORT)
    return path


@pytest.mark.integration
class TestCLI:

    def setup_method(self):
        """Clear registry before each test"""
        ParserFactory._registry = {}
        ParserFactory._locked = False

    def test_init_db(self, tmp_path: Path):
        result = runner.invoke(app, ["--db", str(tmp_path / "new.db"), "init-db"])

        assert result.exit_code == 0
        assert "schema v1" in result.output

    def test_import_and_list(self, db_args, export_file):
        # Act
        imported = runner.invoke(app, db_args + ["import", str(export_file), "--categorize"])
        again = runner.invoke(app, db_args + ["import", str(export_file)])
        listed = runner.invoke(app, db_args + ["transactions", "--category", "food-dining", "-n", "1"])

        # Assert
        assert imported.exit_code == 0
        assert "Imported 3 new transactions" in imported.output
        assert "Skipped 3 duplicates" in again.output
        assert listed.exit_code == 0
        assert "Showing 1 of 2 transactions" in listed.output

    def test_dry_run(self, db_args, export_file):
        runner.invoke(app, db_args + ["import", str(export_file), "--dry-run"])

        listed = runner.invoke(app, db_args + ["transactions"])

        assert "No transactions found" in listed.output

    def test_unknown_category_filter_fails(self, db_args):
        result = runner.invoke(app, db_args + ["transactions", "--category", "pets"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_correct_unknown_transaction(self, db_args):
        result = runner.invoke(app, db_args + ["correct", "txn-404", "housing-rent"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_budget_workflow(self, db_args):
        # Act
        created = runner.invoke(
            app, db_args + ["budget-create", "January", "--start", "2025-01-01", "--end", "2025-01-31"]
        )
        listed = runner.invoke(app, db_args + ["budget"])

        # Assert
        assert created.exit_code == 0
        assert "Created budget January" in created.output
        assert listed.exit_code == 0
        assert "Budgets" in listed.output

    def test_no_budgets(self, db_args):
        result = runner.invoke(app, db_args + ["budget"])

        assert "No budgets" in result.output
