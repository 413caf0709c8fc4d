"""
CLI interface for Listing Guard.

Admin and reporting access to the quota engine.
"""

import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from listing_guard.config.loader import Settings, load_settings
from listing_guard.core.engine import create_engine
from listing_guard.core.errors import QuotaGuardError
from listing_guard.core.reports import history_to_dicts, to_dict
from listing_guard.storage.directory import SqliteUserStore
from listing_guard.storage.repository import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_ERROR = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML settings file"
    ),
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="LISTING_GUARD_DB",
        help="SQLite database path (overrides the settings file)"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log at DEBUG level"
    )
):
    """Listing Guard CLI."""
    try:
        settings = load_settings(config) if config else Settings()
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading settings:[/] {e}")
        sys.exit(EXIT_CODE_ERROR)

    if db:
        settings = replace(settings, storage=replace(settings.storage, db_path=db))

    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.logging.numeric_level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.obj = settings

    if ctx.invoked_subcommand is None:
        console.print("Listing Guard - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the Listing Guard database."""
    try:
        initialize_schema(ctx.obj.storage.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command("add-user")
def add_user(ctx: typer.Context, user_id: str = typer.Argument(..., help="User id to register")):
    """Register a user id (admins must be registered before acting)."""
    settings = ctx.obj
    try:
        store = SqliteUserStore(settings.storage.db_path, settings.storage.busy_timeout)
        store.add_user(user_id, datetime.now(timezone.utc))
        console.print(f"[green]✓[/] User {user_id} registered")
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def status(ctx: typer.Context, user_id: str = typer.Argument(..., help="User id")):
    """Show a user's quota status for the current month."""
    try:
        report = create_engine(ctx.obj).get_user_quota_status(user_id)
        _print_report(f"Quota status for {user_id}", to_dict(report))
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def eligibility(ctx: typer.Context, user_id: str = typer.Argument(..., help="User id")):
    """Check whether a user can publish a listing for free right now."""
    try:
        report = create_engine(ctx.obj).check_listing_eligibility(user_id)
        data = to_dict(report)
        data["requires_payment"] = report.requires_payment
        _print_report(f"Listing eligibility for {user_id}", data)
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def summary(ctx: typer.Context, user_id: str = typer.Argument(..., help="User id")):
    """Show the compact quota summary for a user."""
    try:
        report = create_engine(ctx.obj).get_quota_summary(user_id)
        _print_report(f"Quota summary for {user_id}", to_dict(report))
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def history(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User id"),
    periods: int = typer.Option(
        0,
        "--periods",
        "-n",
        help="Number of months to show (default from settings)"
    )
):
    """Show a user's quota history, most recent month first."""
    try:
        quotas = create_engine(ctx.obj).get_user_quota_history(user_id, periods)
        _print_history(user_id, history_to_dicts(quotas))
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def stats(ctx: typer.Context):
    """Show platform statistics for the current month."""
    try:
        report = create_engine(ctx.obj).get_platform_stats()
        data = to_dict(report)
        data["total_listings_this_period"] = report.total_listings_this_period
        _print_report("Platform statistics", data)
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def pricing(ctx: typer.Context):
    """Show the current phase and full price sheet."""
    try:
        report = create_engine(ctx.obj).get_pricing_info()
        _print_report("Pricing", to_dict(report))
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def transition(
    ctx: typer.Context,
    admin: str = typer.Option(..., "--admin", "-a", help="Acting admin user id")
):
    """Advance the platform to the next monetization phase."""
    try:
        config = create_engine(ctx.obj).transition_global_to_next_phase(admin)
        console.print(f"[green]✓[/] Platform is now in phase [bold]{config.current_phase.value}[/]")
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def extend(
    ctx: typer.Context,
    end_date: str = typer.Argument(..., help="New launch end date (ISO-8601, UTC if no offset)"),
    admin: str = typer.Option(..., "--admin", "-a", help="Acting admin user id")
):
    """Extend the free launch phase to a new end date."""
    try:
        new_end = datetime.fromisoformat(end_date.replace("Z", "+00:00"))
    except ValueError:
        console.print(f"[red]Error:[/] invalid date {end_date!r}, expected ISO-8601")
        sys.exit(EXIT_CODE_ERROR)

    try:
        config = create_engine(ctx.obj).extend_launch_phase(new_end, admin)
        console.print(
            f"[green]✓[/] Launch phase now ends {config.launch_phase_end_date.isoformat()}"
        )
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def prices(
    ctx: typer.Context,
    assignments: List[str] = typer.Argument(..., help="FIELD=VALUE pairs, e.g. standard_listing_price=500"),
    admin: str = typer.Option(..., "--admin", "-a", help="Acting admin user id")
):
    """Update one or more global prices."""
    try:
        updates = _parse_assignments(assignments)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_ERROR)

    try:
        config = create_engine(ctx.obj).update_global_prices(updates, admin)
        console.print(
            f"[green]✓[/] Prices updated; standard listing is now "
            f"{_format_amount(config.standard_listing_price)} {config.currency}"
        )
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


@app.command()
def cleanup(ctx: typer.Context):
    """Delete quota records older than the retention horizon."""
    try:
        deleted = create_engine(ctx.obj).cleanup_old_quotas()
        console.print(f"[green]✓[/] Removed {deleted} old quota record(s)")
        sys.exit(EXIT_CODE_OK)
    except QuotaGuardError as e:
        _fail(e)


def _fail(error: QuotaGuardError) -> None:
    console.print(f"[red]Error ({error.code}):[/] {error.message}")
    sys.exit(EXIT_CODE_ERROR)


def _parse_assignments(assignments: List[str]) -> Dict[str, float]:
    """Turn FIELD=VALUE strings into a price update mapping."""
    updates = {}
    for item in assignments:
        name, sep, raw_value = item.partition("=")
        if not sep or not name:
            raise ValueError(f"expected FIELD=VALUE, got {item!r}")
        try:
            updates[name.strip()] = float(raw_value)
        except ValueError:
            raise ValueError(f"value for {name} must be a number, got {raw_value!r}")
    return updates


def _format_amount(amount: float) -> str:
    """Format an amount without decimals when it is whole."""
    if float(amount).is_integer():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]-[/]"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return _format_amount(value)
    return str(value)


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{name}."))
        else:
            flat[name] = value
    return flat


def _print_report(title: str, data: Dict[str, Any]) -> None:
    """Render a report as a two-column table."""
    table = Table(title=title)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in _flatten(data).items():
        table.add_row(key, _format_value(value))
    console.print(table)


def _print_history(user_id: str, rows: List[Dict[str, Any]]) -> None:
    if not rows:
        console.print(f"\n[bold yellow]No quota history for {user_id}[/]\n")
        return

    table = Table(title=f"Quota history for {user_id}")
    for column in ("Period", "Free used", "Free limit", "Remaining", "Paid", "Total"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row["period"],
            str(row["free_used"]),
            str(row["free_limit"]),
            str(row["free_remaining"]),
            str(row["paid_listings"]),
            str(row["total_listings"]),
        )
    console.print(table)


if __name__ == "__main__":
    app()
