"""svcprice CLI.

Commands:
- init: Initialize database schema
- refresh: Refresh CPI/RPP data and recompute location pricing
- status: Show pricing database statistics and the current CPI baseline
- web serve: Run the admin API
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import func, select

from svcprice.config import get_config
from svcprice.core.logging import configure_logging
from svcprice.db.connection import close_db, get_session, init_db
from svcprice.db.models import (
    LocationModel,
    LocationPricingModel,
    MacroFactorModel,
    ServiceModel,
)
from svcprice.pipeline.errors import RefreshError
from svcprice.pipeline.macro_factors import CPI_FACTOR, MacroFactorStore
from svcprice.pipeline.orchestrator import run_refresh

app = typer.Typer(
    name="svcprice",
    help="svcprice - CPI / regional price parity refresh for service pricing",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Admin API")
app.add_typer(web_cli, name="web")

console = Console()


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        if drop:
            console.print("[yellow]Dropping existing tables...[/yellow]")
        try:
            await init_db(drop=drop)
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def refresh():
    """Refresh CPI and RPP data, then recompute location pricing.

    Runs as a single transaction: on any failure nothing is written.
    """
    config = get_config()
    configure_logging(config.log_level)

    console.print("[bold]Refreshing pricing data[/bold]")

    async def _refresh():
        try:
            return await run_refresh(config)
        finally:
            await close_db()

    try:
        run = asyncio.run(_refresh())
    except (RefreshError, ValueError) as e:
        console.print(f"[bold red]✗ Refresh failed:[/bold red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Refresh Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("CPI", f"{run.cpi.value} ({run.cpi.label})")
    table.add_row(
        "CPI baseline",
        f"{run.baseline.value} ({run.baseline.label})" if run.baseline else "-",
    )
    table.add_row("RPP line code", run.rpp_line_code)
    table.add_row("RPP year", str(run.rpp_year))
    table.add_row("RPP rows", str(run.rpp_rows_received))
    table.add_row("States updated", str(run.updated_states))
    table.add_row("Estimates", str(run.total_estimates))
    table.add_row("Duration", f"{run.duration_seconds:.1f}s")

    console.print(table)

    if run.unmatched:
        console.print(f"[yellow]⚠[/yellow] Unmatched RPP names: {', '.join(run.unmatched)}")

    console.print("[bold green]✓[/bold green] Pricing data refreshed")


@app.command()
def status():
    """Show pricing database statistics and the current CPI baseline."""
    config = get_config()
    series_id = config.refresh.cpi_series_id

    async def _status():
        try:
            async with get_session() as session:
                services_count = (
                    await session.execute(select(func.count()).select_from(ServiceModel))
                ).scalar_one()
                locations_count = (
                    await session.execute(
                        select(func.count())
                        .select_from(LocationModel)
                        .where(LocationModel.is_active.is_(True))
                    )
                ).scalar_one()
                states_with_rpp = (
                    await session.execute(
                        select(func.count())
                        .select_from(LocationModel)
                        .where(
                            LocationModel.type == "state",
                            LocationModel.rpp_index.is_not(None),
                        )
                    )
                ).scalar_one()
                estimates_count = (
                    await session.execute(select(func.count()).select_from(LocationPricingModel))
                ).scalar_one()
                cpi_count = (
                    await session.execute(
                        select(func.count())
                        .select_from(MacroFactorModel)
                        .where(
                            MacroFactorModel.factor_type == CPI_FACTOR,
                            MacroFactorModel.series_id == series_id,
                        )
                    )
                ).scalar_one()
                latest = (
                    await session.execute(
                        select(MacroFactorModel)
                        .where(
                            MacroFactorModel.factor_type == CPI_FACTOR,
                            MacroFactorModel.series_id == series_id,
                        )
                        .order_by(MacroFactorModel.year.desc(), MacroFactorModel.period.desc())
                        .limit(1)
                    )
                ).scalar_one_or_none()
                baseline = await MacroFactorStore(session).get_baseline(CPI_FACTOR, series_id)
        finally:
            await close_db()

        table = Table(title="Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="green")

        table.add_row("Services", str(services_count))
        table.add_row("Active locations", str(locations_count))
        table.add_row("States with RPP", str(states_with_rpp))
        table.add_row("Location estimates", str(estimates_count))
        table.add_row("CPI readings", str(cpi_count))
        table.add_row(
            f"Latest CPI ({series_id})",
            f"{latest.value} ({latest.year}-{latest.period})" if latest else "-",
        )
        table.add_row(
            "CPI baseline",
            f"{baseline.value} ({baseline.year}-{baseline.period})" if baseline else "-",
        )

        console.print(table)

    asyncio.run(_status())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the admin API."""
    import uvicorn

    typer.echo(f"Starting admin API on http://{host}:{port}")
    uvicorn.run("svcprice.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
