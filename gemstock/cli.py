"""gemstock CLI.

Commands:
- init: Initialize database schema
- parcels: List/search parcels
- history: Show a parcel's ledger
- stats: Inventory totals
- highlights: Usage highlighting for every parcel
- alerts: Open operator alerts
- web serve: Run the JSON API
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from gemstock.analytics.service import UsageAnalyticsEngine
from gemstock.analytics.settings import HighlightingSettingsStore, get_default_settings
from gemstock.config import get_config
from gemstock.core.logging import configure_logging
from gemstock.db.connection import close_db, get_session, init_db
from gemstock.exceptions import GemStockError
from gemstock.inventory.repository import ParcelStore
from gemstock.inventory.service import StockMutationEngine
from gemstock.models import HighlightMode, ParcelSearch
from gemstock.notes.alerts import OperatorAlertStore

app = typer.Typer(
    name="gemstock",
    help="gemstock - Diamond parcel inventory and movement ledger",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


# Runs before every command
@app.callback()
def setup():
    configure_logging(get_config())


def _run(coro) -> None:
    """Run ``coro``, dispose the engine and turn domain errors into exit code 1."""

    async def _main():
        try:
            await coro
        finally:
            await close_db()

    try:
        asyncio.run(_main())
    except GemStockError as e:
        console.print(f"[bold red]✗[/bold red] {e.message}")
        raise typer.Exit(code=1) from e


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def parcels(
    parcel_id: str | None = typer.Option(None, "--id", help="Partial parcel id"),
    name: str | None = typer.Option(None, "--name", help="Partial parcel name"),
    shape: str | None = typer.Option(None, "--shape"),
    color: str | None = typer.Option(None, "--color"),
    clarity: str | None = typer.Option(None, "--clarity"),
    carat_weight: str | None = typer.Option(None, "--carat", help="Bucket, e.g. 1.0-1.5"),
    price_range: str | None = typer.Option(None, "--price", help="Bucket, e.g. $1000-$5000"),
    sort_by: str | None = typer.Option(None, "--sort", help="e.g. 'Carat: High to Low'"),
):
    """List parcels, optionally filtered."""
    criteria = ParcelSearch(
        parcel_id=parcel_id,
        parcel_name=name,
        shape=shape,
        color=color,
        clarity=clarity,
        carat_weight=carat_weight,
        price_range=price_range,
        sort_by=sort_by,
    )

    async def _parcels():
        async with get_session() as session:
            rows = await ParcelStore(session).search(criteria)

        table = Table(title=f"Parcels ({len(rows)})")
        table.add_column("Parcel", style="cyan")
        table.add_column("Parent", style="dim")
        table.add_column("Name")
        table.add_column("Stones", justify="right")
        table.add_column("Carat", justify="right")
        table.add_column("Price/ct", justify="right", style="green")
        table.add_column("Grade")

        for parcel in rows:
            table.add_row(
                parcel.parcel_id,
                parcel.parent_parcel_id or "",
                parcel.parcel_name,
                str(parcel.number_of_stones),
                f"{parcel.total_carat:.3f}",
                f"{parcel.price_per_ct:.2f}" if parcel.price_per_ct is not None else "-",
                " ".join(v for v in (parcel.shape, parcel.color, parcel.clarity) if v),
            )
        console.print(table)

    _run(_parcels())


@app.command()
def history(
    parcel_id: str = typer.Argument(..., help="Parcel id"),
):
    """Show the movement ledger for a parcel (newest first)."""

    async def _history():
        records = await StockMutationEngine(get_session).history(parcel_id)
        if not records:
            console.print(f"[yellow]No history for {parcel_id}[/yellow]")
            return

        table = Table(title=f"History: {parcel_id}")
        table.add_column("When", style="dim")
        table.add_column("Action", style="cyan")
        table.add_column("Stones", justify="right")
        table.add_column("Carat", justify="right")
        table.add_column("Total ct", justify="right")
        table.add_column("Group")
        table.add_column("By")
        table.add_column("Comment")

        for record in records:
            table.add_row(
                record.created_at.strftime("%Y-%m-%d %H:%M"),
                record.action.value,
                f"{record.stones_delta:+d}",
                f"{record.ct_weight_delta:+.3f}",
                f"{record.total_carat:.3f}",
                record.carat_group,
                record.actor_name,
                record.comment,
            )
        console.print(table)

    _run(_history())


@app.command()
def stats():
    """Show inventory totals."""

    async def _stats():
        async with get_session() as session:
            totals = await ParcelStore(session).stats()

        table = Table(title="Inventory")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="green")

        table.add_row("Parcels", str(totals.total))
        table.add_row("Total value", f"{totals.total_value:,.2f}")
        table.add_row("Average value", f"{totals.average_price:,.2f}")

        console.print(table)

    _run(_stats())


@app.command()
def highlights(
    user_id: str | None = typer.Option(None, "--user", help="Use this user's saved settings"),
    days: int | None = typer.Option(None, "--days", help="Override the usage window"),
    used_only: bool = typer.Option(False, "--used-only", help="Skip parcels with no usage"),
):
    """Show usage highlighting for parcels."""

    async def _highlights():
        async with get_session() as session:
            if user_id:
                settings = await HighlightingSettingsStore(session).load(user_id)
            else:
                settings = get_default_settings()
            if days:
                settings = settings.model_copy(update={"date_range_days": days})

            engine = UsageAnalyticsEngine(session)
            if used_only:
                rows = await engine.generate_highlighting_data(settings)
            else:
                rows = await engine.generate_complete_highlighting_data(settings)

        mode = "frequency" if settings.mode == HighlightMode.FREQUENCY else "date"
        table = Table(title=f"Highlights ({mode}, last {settings.date_range_days} days)")
        table.add_column("Parcel", style="cyan")
        table.add_column("Uses", justify="right")
        table.add_column("Last used", style="dim")
        table.add_column("Colour")

        for row in rows:
            table.add_row(
                row.parcel_id,
                str(row.usage_count),
                row.last_used.strftime("%Y-%m-%d") if row.last_used else "-",
                f"[on {row.color}]   [/] {row.color}",
            )
        console.print(table)

    _run(_highlights())


@app.command()
def alerts(
    kind: str | None = typer.Option(None, "--kind", help="Only this alert kind"),
):
    """List open operator alerts."""

    async def _alerts():
        rows = await OperatorAlertStore(get_session).list_open(kind)
        if not rows:
            console.print("[bold green]✓[/bold green] No open alerts")
            return

        table = Table(title=f"Open alerts ({len(rows)})")
        table.add_column("Raised", style="dim")
        table.add_column("Kind", style="yellow")
        table.add_column("Resource")
        table.add_column("Message")

        for alert in rows:
            table.add_row(
                alert.created_at.strftime("%Y-%m-%d %H:%M"),
                alert.kind,
                f"{alert.resource_type}:{alert.resource_id}",
                alert.message,
            )
        console.print(table)

    _run(_alerts())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI JSON API."""
    import uvicorn

    typer.echo(f"Starting gemstock API on http://{host}:{port}")
    uvicorn.run("gemstock.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    app()


if __name__ == "__main__":
    main()
