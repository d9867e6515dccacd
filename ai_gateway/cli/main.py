"""
CLI interface for AI Gateway.

Inspects and maintains the usage ledger and response cache.
"""

import sys
from datetime import date as date_cls
from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_gateway.config.loader import GatewayConfig, config_from_env
from ai_gateway.storage.cache import ResponseCache
from ai_gateway.storage.ledger import UsageLedger

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _load_config() -> GatewayConfig:
    try:
        return config_from_env()
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _cache_for(config: GatewayConfig) -> ResponseCache:
    return ResponseCache(
        config.cache_path,
        ttl_seconds=config.cache_ttl_seconds,
        max_entries=config.cache_max_entries,
    )


def _validate_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        return date_cls.fromisoformat(value).isoformat()
    except ValueError:
        raise typer.BadParameter("date must be YYYY-MM-DD")


def _format_currency(amount: Decimal) -> str:
    """Format currency with sign and four decimals."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.4f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """AI Gateway CLI."""
    if ctx.invoked_subcommand is None:
        console.print("AI Gateway - Use --help to see available commands")


@app.command()
def status():
    """Show where usage and cache data are stored."""
    config = _load_config()
    console.print(f"Usage ledger: {config.usage_file}")
    console.print(f"Response cache: {config.cache_path}")
    if config.daily_budget is None:
        console.print("Daily budget: unmetered")
    else:
        console.print(
            f"Daily budget: {_format_currency(config.daily_budget)} "
            f"(on breach: {config.on_budget_breach.value})"
        )


@app.command()
def usage(
    day: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Day to report (YYYY-MM-DD, defaults to today)",
        callback=_validate_date
    )
):
    """Show request count and cost for a day, broken down by model."""
    config = _load_config()
    record = UsageLedger(config.usage_file).stats_for(day)

    console.print(f"\n[bold]AI Usage for {record.date}[/bold]")
    console.print("-" * 40)
    console.print(f"Requests: {record.request_count}")
    console.print(f"Tokens: {record.total_tokens:,}")
    console.print(f"Total cost: {_format_currency(record.total_cost)}")

    if not record.models:
        console.print("\n[dim]No usage recorded for this day.[/]")
        return

    table = Table(title="Per-model usage")
    table.add_column("Model")
    table.add_column("Requests", justify="right")
    table.add_column("Prompt tokens", justify="right")
    table.add_column("Completion tokens", justify="right")
    table.add_column("Cost", justify="right")
    for model, model_usage in sorted(record.models.items()):
        table.add_row(
            model,
            str(model_usage.requests),
            f"{model_usage.prompt_tokens:,}",
            f"{model_usage.completion_tokens:,}",
            _format_currency(model_usage.cost),
        )
    console.print(table)


@app.command()
def budget():
    """Show today's spend against the daily budget."""
    config = _load_config()
    ledger = UsageLedger(config.usage_file)
    spent = ledger.stats_for().total_cost

    console.print(f"Spent today: {_format_currency(spent)}")
    if config.daily_budget is None:
        console.print("Daily budget: unmetered")
        return

    remaining = ledger.remaining_budget(None, config.daily_budget)
    console.print(f"Daily budget: {_format_currency(config.daily_budget)}")
    console.print(f"Remaining: {_format_currency(remaining)}")
    if remaining <= 0:
        console.print(
            f"[bold yellow]Budget exhausted[/] - new calls will "
            f"{config.on_budget_breach.value}"
        )


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm clearing all usage data")
):
    """Clear the usage ledger for every day."""
    if not yes:
        console.print("[red]Refusing to reset usage without --yes[/]")
        sys.exit(EXIT_CODE_FAIL)
    config = _load_config()
    UsageLedger(config.usage_file).reset()
    console.print("[green]✓[/] Usage ledger reset")


@app.command("prune-usage")
def prune_usage(
    before: str = typer.Option(
        ...,
        "--before",
        "-b",
        help="Delete days strictly before this date (YYYY-MM-DD)",
        callback=_validate_date
    )
):
    """Delete ledger days older than a date."""
    config = _load_config()
    removed = UsageLedger(config.usage_file).prune_before(before)
    console.print(f"[green]✓[/] Removed {removed} day(s) before {before}")


@app.command("cache-prune")
def cache_prune():
    """Evict expired and over-capacity cache entries."""
    config = _load_config()
    try:
        removed = _cache_for(config).prune()
    except Exception as e:
        console.print(f"[red]Error pruning cache:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Evicted {removed} cache entr{'y' if removed == 1 else 'ies'}")


@app.command("cache-clear")
def cache_clear():
    """Delete every cached response."""
    config = _load_config()
    try:
        removed = _cache_for(config).clear()
    except Exception as e:
        console.print(f"[red]Error clearing cache:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Cleared {removed} cache entr{'y' if removed == 1 else 'ies'}")


if __name__ == "__main__":
    app()
