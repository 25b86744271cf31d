import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import typer
from tortoise import Tortoise

from ..common.errors import ERPError
from ..core.config import TORTOISE_ORM_CONFIG
from ..core.container import ERP, build_erp
from ..features.reports.schemas import FeedFilter
from ..features.reports import service as report_service

logger = logging.getLogger(__name__)

app = typer.Typer(name="erp-cli", help="CLI for maintaining the ERP database and inspecting stock.")


# Shared async context manager for database connection
class DBConnection:
    def __init__(self, load: bool = True):
        self.load = load
        self.erp: Optional[ERP] = None

    async def __aenter__(self) -> "DBConnection":
        await Tortoise.init(config=TORTOISE_ORM_CONFIG)
        await Tortoise.generate_schemas(safe=True)  # Generate schema if it doesn't exist
        if self.load:
            self.erp = build_erp()
            await self.erp.fetch_all()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await Tortoise.close_connections()


# Database commands
db_app = typer.Typer(name="db", help="Manage the database schema.")
app.add_typer(db_app)


@db_app.command("init")
def init_db_command():
    """Creates any missing tables."""
    asyncio.run(_init_db())


async def _init_db():
    async with DBConnection(load=False):
        typer.secho(f"Schema ready on {TORTOISE_ORM_CONFIG['connections']['default']}", fg=typer.colors.GREEN)


# Inventory commands
inventory_app = typer.Typer(name="inventory", help="Inspect and adjust stock.")
app.add_typer(inventory_app)


@inventory_app.command("list")
def list_inventory_command(
    low_stock: bool = typer.Option(False, "--low-stock", help="Only items at or below their reorder level."),
):
    """Lists inventory items with their current stock."""
    asyncio.run(_list_inventory(low_stock))


async def _list_inventory(low_stock: bool):
    async with DBConnection() as db:
        items = db.erp.inventory.low_stock_items() if low_stock else db.erp.inventory.list_items()
        if not items:
            typer.echo("No inventory items found.")
            return
        for item in items:
            name = f"{item.name} [{item.variant_name}]" if item.is_variant and item.variant_name else item.name
            typer.echo(f"{item.id}  {name:<40} {item.current_stock:>10} {item.unit_of_measure}")


@inventory_app.command("adjust")
def adjust_stock_command(
    item_id: str = typer.Argument(..., help="Id of the inventory item."),
    quantity: str = typer.Argument(..., help="Signed quantity, e.g. 5 or -2."),
    reason: str = typer.Option("manual", help="Reason recorded on the adjustment."),
    notes: Optional[str] = typer.Option(None, help="Free text recorded with the adjustment."),
):
    """Adjusts the stock of an item and records the adjustment."""
    try:
        delta = Decimal(quantity)
    except InvalidOperation:
        typer.secho(f"Error: '{quantity}' is not a number.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    asyncio.run(_adjust_stock(item_id, delta, reason, notes))


async def _adjust_stock(item_id: str, delta: Decimal, reason: str, notes: Optional[str]):
    async with DBConnection() as db:
        try:
            result = await db.erp.inventory.adjust_stock(item_id, delta, reason, notes)
        except ERPError as e:
            typer.secho(f"Error: {e.message}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.secho(
            f"Stock of {result.adjustment.item_name or item_id}: {result.previous_quantity} -> {result.new_quantity}",
            fg=typer.colors.GREEN,
        )
        if result.adjustment.id.startswith("temp-"):
            typer.secho("Warning: the adjustment record could not be written yet.", fg=typer.colors.YELLOW)


# Report commands
reports_app = typer.Typer(name="reports", help="Print reports.")
app.add_typer(reports_app)


@reports_app.command("feed")
def transaction_feed_command(
    search: Optional[str] = typer.Option(None, help="Text to look for."),
    source: Optional[str] = typer.Option(None, help="financial, purchase, sales or adjustment."),
    limit: int = typer.Option(20, min=1, help="Number of entries to print."),
):
    """Prints the combined transaction feed, newest first."""
    asyncio.run(_transaction_feed(search, source, limit))


async def _transaction_feed(search: Optional[str], source: Optional[str], limit: int):
    async with DBConnection() as db:
        erp = db.erp
        entries = report_service.filter_feed(
            report_service.build_transaction_feed(
                erp.financials.list_transactions(),
                erp.purchasing.list_orders(),
                erp.sales.list_orders(),
                erp.inventory.adjustments.snapshot(),
            ),
            FeedFilter(search=search, source=source),
        )
        for entry in entries[:limit]:
            typer.echo(
                f"{entry.date:%Y-%m-%d}  {entry.display_type:<20} {entry.display_id:<16} "
                f"{entry.amount:>12}  {entry.description}"
            )
        summary = report_service.summarize_feed(entries)
        typer.echo(f"{summary.entry_count} entries, income {summary.total_income}, expenses {summary.total_expenses}")


if __name__ == "__main__":
    app()
