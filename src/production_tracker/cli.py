import logging
from datetime import datetime
from functools import partial
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from typing_extensions import Annotated

from .config import AppConfig, ConfigError
from .db import create_db_engine, create_schema, create_session_factory
from .exceptions import ManufacturingError
from .explosion import StructureExplosionEngine
from .lifecycle import OrderLifecycle
from .models import OrderFilter, OrderStatus, ProductionOrder
from .sql_store import SqlUnitOfWork

app = typer.Typer(help="Production Order Tracker CLI")
console = Console()


def _load_config() -> AppConfig:
    config = AppConfig.load()
    logging.getLogger().setLevel(config.log_level)
    return config


def _uow_factory(config: AppConfig):
    session_factory = create_session_factory(config)
    return partial(SqlUnitOfWork, session_factory, config.reference_prefix)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(code=1)


def _fmt(value) -> str:
    """Decimal without trailing zeros, e.g. 150.000000 -> 150."""
    text = f"{value:f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def _orders_table(orders, title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Order", justify="right")
    table.add_column("Reference")
    table.add_column("Item")
    table.add_column("Location")
    table.add_column("Quantity", justify="right")
    table.add_column("Required By")
    table.add_column("Status")
    for order in orders:
        status_style = "green" if order.status == OrderStatus.OPEN else "dim"
        table.add_row(
            str(order.order_id),
            order.reference_tag,
            order.top_item,
            order.location,
            _fmt(order.quantity),
            order.required_by.isoformat(),
            f"[{status_style}]{order.status.value}[/{status_style}]",
        )
    return table


def _lines_table(order: ProductionOrder) -> Table:
    table = Table(title=f"Lines of {order.reference_tag}", show_header=True, header_style="bold magenta")
    table.add_column("Item")
    table.add_column("Required", justify="right")
    table.add_column("Issued", justify="right")
    table.add_column("Received", justify="right")
    table.add_column("Std Cost", justify="right")
    for line in order.lines.values():
        item_label = f"{line.item_id} (tracking)" if line.item_id == order.top_item else line.item_id
        received_style = "green" if line.is_complete else "yellow"
        table.add_row(
            item_label,
            _fmt(line.required),
            _fmt(line.issued),
            f"[{received_style}]{_fmt(line.received)}[/{received_style}]",
            _fmt(line.standard_cost),
        )
    return table


@app.command("init-db")
def init_db():
    """Creates the database tables and the order counter."""
    try:
        config = _load_config()
        create_schema(create_db_engine(config))
    except ConfigError as e:
        _fail(f"Configuration error: {e}")
    console.print("[green]Database schema is ready.[/green]")


@app.command()
def explode(
    item: Annotated[str, typer.Argument(help="Item to explode")],
    as_of: Annotated[Optional[datetime], typer.Option("--as-of", formats=["%Y-%m-%d"], help="Effectivity date (default: today)")] = None,
):
    """
    Shows every structure edge beneath ITEM, level by level.
    """
    try:
        config = _load_config()
        with _uow_factory(config)() as uow:
            rows = StructureExplosionEngine(uow.structure).explode(item, as_of.date() if as_of else None)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")

    if not rows:
        console.print(f"[yellow]No active structure found for {item}.[/yellow]")
        return

    table = Table(title=f"Structure of {item}", show_header=True, header_style="bold magenta")
    table.add_column("Level", justify="right")
    table.add_column("Parent")
    table.add_column("Component")
    table.add_column("Qty/Unit", justify="right")
    table.add_column("Seq", justify="right")
    table.add_column("Work Centre", style="dim")
    table.add_column("Auto Issue", justify="center")
    for row in rows:
        table.add_row(
            str(row.level),
            row.parent,
            "  " * (row.level - 1) + row.component,
            _fmt(row.quantity_per_unit),
            str(row.sequence),
            row.work_centre or "",
            "✓" if row.auto_issue else "✗",
        )
    console.print(table)


@app.command()
def orders(
    location: Annotated[Optional[str], typer.Option("--location", help="Only orders at this location")] = None,
    item: Annotated[Optional[str], typer.Option("--item", help="Only orders for this top item")] = None,
    status: Annotated[Optional[OrderStatus], typer.Option("--status", help="open or closed")] = None,
    required_by: Annotated[Optional[datetime], typer.Option("--required-by", formats=["%Y-%m-%d"], help="Required on or before this date")] = None,
):
    """
    Lists production orders, newest first.
    """
    order_filter = OrderFilter(
        location=location,
        top_item=item,
        status=status,
        required_by=required_by.date() if required_by else None,
    )
    try:
        config = _load_config()
        found = OrderLifecycle(_uow_factory(config)).list_orders(order_filter)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")

    if not found:
        console.print("[yellow]No production orders match.[/yellow]")
        return
    console.print(_orders_table(found, "Production Orders"))


@app.command("show-order")
def show_order(
    order_id: Annotated[int, typer.Argument(help="Order number")],
):
    """
    Shows one production order with its lines.
    """
    try:
        config = _load_config()
        order = OrderLifecycle(_uow_factory(config)).get_order(order_id)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")
    except ManufacturingError as e:
        _fail(str(e))

    console.print(_orders_table([order], f"Work Order {order.reference_tag}"))
    if order.reference or order.remark:
        console.print(f"Reference: {order.reference or '-'}  Remark: {order.remark or '-'}")
    console.print(_lines_table(order))
