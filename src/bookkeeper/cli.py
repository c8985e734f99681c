import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from bookkeeper.budgeting import BudgetReport
from bookkeeper.categorization import UNKNOWN_MERCHANT
from bookkeeper.database.connection import DatabaseConfig, DatabaseManager
from bookkeeper.domain.enums import BudgetStatus, Direction
from bookkeeper.domain.models import Transaction
from bookkeeper.logging_setup import configure_logging
from bookkeeper.repositories.sqlite_budget_repository import SQLiteBudgetRepository
from bookkeeper.repositories.sqlite_category_repository import SQLiteCategoryRepository
from bookkeeper.repositories.sqlite_learning_repository import SQLiteLearningSignalRepository
from bookkeeper.repositories.sqlite_transaction_repository import SQLiteTransactionRepository
from bookkeeper.services import BudgetService, CategoryService, TransactionService

app = typer.Typer(
    name="bookkeeper",
    help="Categorize transactions, detect recurring payments and track budgets",
    add_completion=False,
)

console = Console()

DATE_FORMATS = ["%Y-%m-%d"]

STATUS_STYLES = {
    BudgetStatus.ON_TRACK: "green",
    BudgetStatus.NEAR_LIMIT: "yellow",
    BudgetStatus.OVER_BUDGET: "red",
}


class State:
    verbose: bool = False
    db_path: Optional[Path] = None
    db: Optional[DatabaseManager] = None
    categories: Optional[CategoryService] = None
    transactions: Optional[TransactionService] = None
    budgets: Optional[BudgetService] = None


state = State()


def format_amount(minor_units: int) -> str:
    return f"${minor_units / 100:,.2f}"


def to_minor_units(value: str) -> int:
    """'1,200.50' -> 120050, half a cent rounds up"""
    try:
        amount = Decimal(value.replace("$", "").replace(",", "").strip())
    except InvalidOperation:
        raise typer.BadParameter(f"'{value}' is not an amount")
    if not amount.is_finite():
        raise typer.BadParameter(f"'{value}' is not an amount")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value else None


def _fail(e: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {e}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=1)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    db_path: Path = typer.Option(
        Path("data/bookkeeper.db"),
        "--db",
        envvar="BOOKKEEPER_DB",
        help="Path to the SQLite database",
    ),
):
    """
    Bookkeeper - categorize transactions, find recurring payments, track budgets.
    """
    configure_logging(logging.DEBUG if verbose else None)

    if state.db is None or state.db_path != db_path:
        if state.db is not None:
            state.db.close()
        state.db_path = db_path
        state.db = DatabaseManager(DatabaseConfig(db_path))

        transaction_repository = SQLiteTransactionRepository(state.db)
        state.categories = CategoryService(SQLiteCategoryRepository(state.db))
        state.transactions = TransactionService(
            transaction_repository,
            state.categories,
            learning_repository=SQLiteLearningSignalRepository(state.db),
        )
        state.budgets = BudgetService(
            SQLiteBudgetRepository(state.db),
            transaction_repository,
            state.categories,
        )

    state.verbose = verbose


@app.command(name="init-db")
def init_db():
    """Create the database schema."""
    try:
        version = state.db.initialize()
        console.print(f"[green]✓[/green] Database ready at {state.db_path} (schema v{version})")
    except Exception as e:
        _fail(e)


@app.command(name="seed-categories")
def seed_categories():
    """Create the default category tree."""
    try:
        created = state.categories.seed_defaults()
        console.print(f"[green]✓[/green] Added {len(created)} categories")
    except Exception as e:
        _fail(e)


@app.command(name="categories")
def list_categories():
    """Show the category tree."""
    try:
        taxonomy = state.categories.get_taxonomy()
        if not len(taxonomy):
            console.print("[yellow]No categories. Run 'bookkeeper seed-categories'.[/yellow]")
            return

        table = Table(title="Categories")
        table.add_column("Category", style="cyan")
        table.add_column("ID", style="dim")

        def add_rows(category_id: str, depth: int):
            category = taxonomy.require(category_id)
            table.add_row(f"{'  ' * depth}{category.name}", category.id)
            for child in sorted(taxonomy.children_of(category_id), key=lambda c: c.name):
                add_rows(child.id, depth + 1)

        for root in sorted(taxonomy.roots(), key=lambda c: c.name):
            add_rows(root.id, 0)

        console.print(table)
    except Exception as e:
        _fail(e)


def _transaction_table(title: str, transactions: List[Transaction], statuses=None) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", max_width=10)
    table.add_column("Date", style="cyan")
    table.add_column("Description", style="white", max_width=40)
    table.add_column("Category", style="magenta")
    table.add_column("Amount", justify="right")
    if statuses is not None:
        table.add_column("Status", justify="center")

    for index, txn in enumerate(transactions):
        color = "green" if txn.direction == Direction.INFLOW else "red"
        sign = "+" if txn.direction == Direction.INFLOW else "-"
        row = [
            (txn.id or "")[:8],
            str(txn.transaction_date),
            txn.description[:40],
            state.transactions.display_category(txn),
            f"[{color}]{sign}{format_amount(txn.amount)}[/{color}]",
        ]
        if statuses is not None:
            row.append(statuses[index])
        table.add_row(*row)
    return table


@app.command(name="import")
def import_transactions(
    filepath: Path = typer.Argument(
        ...,
        help="Path to the transaction export",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    source: str = typer.Option(
        "aggregator-csv",
        "--source", "-s",
        help="Transaction source format",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview without saving to database",
    ),
    categorize: bool = typer.Option(
        False,
        "--categorize",
        help="Categorize transactions as they are being imported",
    ),
):
    """
    Import transactions from an export file.

    Examples:
        bookkeeper import export.csv
        bookkeeper import export.csv --dry-run --categorize
    """
    try:
        console.print(Panel.fit(
            f"[bold cyan]Import Configuration[/bold cyan]\n"
            f"File: {filepath}\n"
            f"Source: {source}\n"
            f"Mode: {'DRY RUN' if dry_run else 'LIVE'}\n"
            f"Categorize: {'YES' if categorize else 'NO'}",
            border_style="cyan",
        ))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Importing transactions...", total=None)
            result = state.transactions.import_file(
                filepath=filepath,
                source=source,
                dry_run=dry_run,
                categorize=categorize,
            )
            progress.update(task, completed=True)

        console.print(f"\n[bold]Found {result.total_parsed} transactions[/bold]")

        preview = (result.imported + result.skipped)[:5]
        if preview:
            imported_ids = {id(t) for t in result.imported}
            statuses = [
                "[green]NEW[/green]" if id(t) in imported_ids else "[yellow]DUP[/yellow]"
                for t in preview
            ]
            console.print(_transaction_table("Preview (first 5)", preview, statuses))

        if dry_run:
            console.print("[yellow]DRY RUN - No changes made[/yellow]")
            console.print(f"[green]✓[/green] Would import: {result.new_transactions}")
            console.print(f"[yellow]Would skip:[/yellow] {result.duplicates_skipped}")
        else:
            console.print(f"[bold green]✓ Imported {result.new_transactions} new transactions[/bold green]")
            if result.duplicates_skipped > 0:
                console.print(f"[yellow]Skipped {result.duplicates_skipped} duplicates[/yellow]")
        if result.errors:
            console.print(f"[red]{result.errors} rows could not be parsed[/red]")
    except Exception as e:
        _fail(e)


@app.command(name="categorize")
def categorize(
    start: Optional[datetime] = typer.Option(None, "--start", formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, "--end", formats=DATE_FORMATS),
    overwrite: bool = typer.Option(
        False,
        "--overwrite",
        help="Re-categorize transactions that already have an AI category",
    ),
):
    """Categorize stored transactions with the rule matcher."""
    try:
        count = state.transactions.categorize_transactions(
            start_date=_as_date(start),
            end_date=_as_date(end),
            overwrite=overwrite,
        )
        console.print(f"[green]✓[/green] Categorized {count} transactions")
        if state.verbose:
            console.print(f"[dim]{state.transactions.categorization_engine.get_rule_chain_info()}[/dim]")
    except Exception as e:
        _fail(e)


@app.command(name="transactions")
def list_transactions(
    start: Optional[datetime] = typer.Option(None, "--start", formats=DATE_FORMATS),
    end: Optional[datetime] = typer.Option(None, "--end", formats=DATE_FORMATS),
    direction: Optional[Direction] = typer.Option(None, "--direction", "-d"),
    category: Optional[str] = typer.Option(
        None,
        "--category", "-c",
        help="Category id; parent categories include their children",
    ),
    limit: int = typer.Option(25, "--limit", "-n", min=1),
):
    """
    List transactions.

    Examples:
        bookkeeper transactions --category food-dining
        bookkeeper transactions --start 2025-01-01 --end 2025-01-31 -d outflow
    """
    try:
        transactions = state.transactions.get_transactions(
            start_date=_as_date(start),
            end_date=_as_date(end),
            direction=direction,
            category_id=category,
        )
        if not transactions:
            console.print("[yellow]No transactions found[/yellow]")
            return

        console.print(_transaction_table("Transactions", transactions[:limit]))
        if len(transactions) > limit:
            console.print(f"\n[dim]Showing {limit} of {len(transactions)} transactions[/dim]")
    except Exception as e:
        _fail(e)


@app.command(name="correct")
def correct(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    category_id: str = typer.Argument(..., help="Category ID, or 'none' to clear"),
):
    """Set (or clear) the user category of a transaction."""
    try:
        corrected = state.transactions.correct_category(transaction_id, category_id)
        label = state.transactions.display_category(corrected)
        console.print(f"[green]✓[/green] {corrected.description}: {label}")
    except Exception as e:
        _fail(e)


@app.command(name="recurring")
def recurring(
    as_of: Optional[datetime] = typer.Option(
        None, "--as-of", formats=DATE_FORMATS, help="End of the lookback window"
    ),
    min_amount: Optional[str] = typer.Option(
        None, "--min-amount", help="Minimum amount for the amount-bucket pass, e.g. 500"
    ),
    bucket: Optional[str] = typer.Option(
        None, "--bucket", help="Amount bucket width, e.g. 50"
    ),
    lookback_days: Optional[int] = typer.Option(None, "--lookback-days", min=1),
):
    """Detect recurring payments (rent, utilities, subscriptions)."""
    try:
        settings = state.transactions.detector_settings
        overrides = {}
        if min_amount is not None:
            overrides["min_amount"] = to_minor_units(min_amount)
        if bucket is not None:
            overrides["amount_bucket"] = to_minor_units(bucket)
        if lookback_days is not None:
            overrides["lookback_days"] = lookback_days
        if overrides:
            settings = replace(settings, **overrides)

        result = state.transactions.detect_recurring(as_of=_as_date(as_of), settings=settings)

        if not result.series:
            console.print("[yellow]No recurring series found[/yellow]")
            return

        table = Table(title="Recurring series")
        table.add_column("Merchant", style="cyan")
        table.add_column("Cadence")
        table.add_column("Typical", justify="right")
        table.add_column("Seen", justify="right")
        table.add_column("Last", style="dim")
        table.add_column("Next", style="dim")
        table.add_column("Confidence", justify="right")

        for series in result.series:
            merchant = series.merchant_key if series.merchant_key != UNKNOWN_MERCHANT else "?"
            table.add_row(
                merchant,
                series.cadence.value,
                format_amount(series.typical_amount),
                str(series.occurrence_count),
                str(series.last_seen_date),
                str(series.next_expected_date),
                f"{series.confidence:.0%}",
            )
        console.print(table)

        if result.skipped:
            console.print(f"[red]{result.skipped} malformed transactions skipped[/red]")
    except Exception as e:
        _fail(e)


@app.command(name="budget-create")
def budget_create(
    name: str = typer.Argument(...),
    start: datetime = typer.Option(..., "--start", formats=DATE_FORMATS),
    end: datetime = typer.Option(..., "--end", formats=DATE_FORMATS),
):
    """Create a budget for a period."""
    try:
        budget = state.budgets.create_budget(name, start.date(), end.date())
        console.print(f"[green]✓[/green] Created budget {budget.name} ({budget.id})")
    except Exception as e:
        _fail(e)


@app.command(name="budget-line")
def budget_line(
    budget_id: str = typer.Argument(...),
    name: str = typer.Argument(...),
    amount: str = typer.Argument(..., help="Budgeted amount, e.g. 1200.00"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    group: Optional[str] = typer.Option(None, "--group", "-g"),
):
    """Add a line to a budget."""
    try:
        line = state.budgets.add_line(
            budget_id, name, to_minor_units(amount), category_id=category, group=group
        )
        console.print(f"[green]✓[/green] Added line {line.name} ({line.id})")
    except Exception as e:
        _fail(e)


@app.command(name="budget-override")
def budget_override(
    budget_id: str = typer.Argument(...),
    transaction_id: str = typer.Argument(...),
    line_id: str = typer.Argument(...),
    reason: Optional[str] = typer.Option(None, "--reason"),
):
    """Count a transaction against a specific budget line."""
    try:
        state.budgets.add_override(budget_id, transaction_id, line_id, reason)
        console.print(f"[green]✓[/green] Transaction {transaction_id} now counts toward {line_id}")
    except Exception as e:
        _fail(e)


def _print_report(report: BudgetReport) -> None:
    table = Table(title=f"Budget: {report.budget_name}")
    table.add_column("Line", style="cyan")
    table.add_column("Group", style="dim")
    table.add_column("Budgeted", justify="right")
    table.add_column("Spent", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Status")

    for line in report.lines:
        style = STATUS_STYLES[line.status]
        used = "unbudgeted" if line.unbudgeted else f"{line.percentage_used:.0f}%"
        table.add_row(
            line.name + (" [red](missing category)[/red]" if line.category_missing else ""),
            line.group or "",
            format_amount(line.budgeted),
            format_amount(line.spent),
            format_amount(line.remaining),
            used,
            f"[{style}]{line.status.value}[/{style}]",
        )
    console.print(table)

    if report.groups:
        groups = Table(title="Groups")
        groups.add_column("Group", style="cyan")
        groups.add_column("Budgeted", justify="right")
        groups.add_column("Spent", justify="right")
        groups.add_column("Remaining", justify="right")
        groups.add_column("Status")
        for group in report.groups:
            style = STATUS_STYLES[group.status]
            groups.add_row(
                group.name,
                format_amount(group.budgeted),
                format_amount(group.spent),
                format_amount(group.remaining),
                f"[{style}]{group.status.value}[/{style}]",
            )
        console.print(groups)

    console.print(
        f"\n[bold]Total:[/bold] {format_amount(report.total_spent)} of "
        f"{format_amount(report.total_budgeted)} "
        f"({format_amount(report.total_remaining)} remaining)"
    )
    if report.unassigned_spent:
        console.print(f"[dim]Unbudgeted spending: {format_amount(report.unassigned_spent)}[/dim]")
    for error in report.errors:
        console.print(f"[red]{error}[/red]")


@app.command(name="budget")
def budget(
    budget_id: Optional[str] = typer.Argument(None, help="Budget ID; lists budgets if omitted"),
    refresh: bool = typer.Option(
        False,
        "--refresh",
        help="Store the recomputed spent/remaining on the budget lines",
    ),
    recommend: bool = typer.Option(False, "--recommend", help="Suggest adjustments"),
):
    """Show budget performance."""
    try:
        if budget_id is None:
            budgets = state.budgets.budget_repository.list_budgets()
            if not budgets:
                console.print("[yellow]No budgets. Run 'bookkeeper budget-create'.[/yellow]")
                return
            table = Table(title="Budgets")
            table.add_column("ID", style="dim")
            table.add_column("Name", style="cyan")
            table.add_column("Period")
            table.add_column("Lines", justify="right")
            for item in budgets:
                table.add_row(
                    item.id,
                    item.name,
                    f"{item.period.start_date} → {item.period.end_date}",
                    str(len(item.lines)),
                )
            console.print(table)
            return

        report = state.budgets.refresh(budget_id) if refresh else state.budgets.report(budget_id)
        _print_report(report)

        if recommend:
            recommendations = state.budgets.recommendations(budget_id)
            if not recommendations:
                console.print("\n[green]No adjustments suggested[/green]")
                return
            table = Table(title="Suggestions")
            table.add_column("Type", style="cyan")
            table.add_column("Current", justify="right")
            table.add_column("Suggested", justify="right")
            table.add_column("Confidence", justify="right")
            table.add_column("Reason")
            for item in recommendations:
                table.add_row(
                    item.recommendation_type.value,
                    format_amount(item.current_amount),
                    format_amount(item.suggested_amount),
                    f"{item.confidence:.0%}",
                    item.reason,
                )
            console.print(table)
    except Exception as e:
        _fail(e)


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
