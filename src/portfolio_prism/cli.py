"""Click-based CLI for portfolio-prism.

Thin wrapper around library modules: every command delegates to the
holdings store or the valuation engine.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from portfolio_prism.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize the holdings store from config."""
    from portfolio_prism.portfolio import create_store

    return await create_store(config.storage)


def _build_engine(config):
    """Build providers from config and wrap them in an engine."""
    from portfolio_prism.portfolio import PortfolioEngine
    from portfolio_prism.prices import build_providers

    providers = build_providers(config)
    return PortfolioEngine(
        fund_provider=providers.fund,
        crypto_provider=providers.crypto,
        timeout=config.server.request_timeout,
    )


def _fmt_money(value: float) -> str:
    return f"{value:,.2f}"


def _fmt_pct(value: float) -> str:
    color = "green" if value >= 0 else "red"
    return f"[{color}]{value:+.2f}%[/{color}]"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="PRISM_CONFIG",
    default=None,
    help="Path to config.yaml.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="portfolio-prism")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Portfolio Prism: fund and crypto portfolio tracker."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# summary
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output raw JSON.")
@click.pass_context
def summary(ctx: click.Context, as_json: bool) -> None:
    """Value every holding and print the portfolio summary."""

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        engine = _build_engine(config)
        try:
            from portfolio_prism.portfolio import seed_from_config

            await seed_from_config(store, config)
            holdings = await store.list_holdings()
            return await engine.summarize(holdings)
        finally:
            await engine.close()
            await store.close()

    result = _run_async(_run())
    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        _output_summary_table(result)


def _output_summary_table(result) -> None:
    """Render a PortfolioSummary as rich tables."""
    for valuation, title in ((result.funds, "Funds"), (result.cryptos, "Crypto")):
        if valuation.degraded:
            title += " [yellow](prices unavailable)[/yellow]"
        table = Table(title=title)
        table.add_column("Symbol", style="bold")
        table.add_column("Name")
        table.add_column("Price", justify="right")
        table.add_column("Quantity", justify="right")
        table.add_column("Value", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("P&L %", justify="right")

        for asset in valuation.assets:
            symbol = asset.symbol + (" [yellow]*[/yellow]" if asset.stale else "")
            table.add_row(
                symbol,
                asset.name,
                f"{asset.price:,.4f}",
                f"{asset.quantity:,.4f}",
                _fmt_money(asset.value),
                _fmt_money(asset.cost_basis),
                _fmt_pct(asset.pnl_pct),
            )
        table.add_section()
        table.add_row(
            "Total", "", "", "",
            _fmt_money(valuation.value),
            _fmt_money(valuation.cost_basis),
            _fmt_pct(valuation.pnl_pct),
        )
        console.print(table)

    console.print(
        f"Total value: [bold]{_fmt_money(result.total_value)}[/bold]  "
        f"P&L: {_fmt_money(result.total_pnl)} ({_fmt_pct(result.total_pnl_pct)})"
    )
    if result.funds.stale or result.cryptos.stale:
        console.print("[yellow]* stale price[/yellow]")


# ---------------------------------------------------------------------------
# holdings
# ---------------------------------------------------------------------------


@cli.group()
def holdings() -> None:
    """Manage stored holdings."""


@holdings.command("list")
@click.option(
    "--type",
    "asset_type",
    type=click.Choice(["fund", "crypto"], case_sensitive=False),
    default=None,
    help="Only list one asset class.",
)
@click.pass_context
def list_holdings(ctx: click.Context, asset_type: str | None) -> None:
    """List stored holdings."""
    from portfolio_prism.core import AssetClass

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            return await store.list_holdings(
                AssetClass(asset_type.lower()) if asset_type else None
            )
        finally:
            await store.close()

    rows = _run_async(_run())
    if not rows:
        console.print("[yellow]No holdings stored.[/yellow]")
        return

    table = Table(title="Holdings")
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("Symbol", style="bold")
    table.add_column("Quantity", justify="right")
    table.add_column("Cost basis", justify="right")
    for h in rows:
        table.add_row(
            str(h.id), str(h.type), h.symbol, f"{h.quantity:,.4f}", _fmt_money(h.cost_basis)
        )
    console.print(table)


@holdings.command("add")
@click.argument("asset_type", type=click.Choice(["fund", "crypto"], case_sensitive=False))
@click.argument("symbol")
@click.option("--quantity", "-q", type=float, required=True, help="Units held.")
@click.option("--cost-basis", type=float, default=0.0, help="Total amount paid.")
@click.pass_context
def add_holding(
    ctx: click.Context, asset_type: str, symbol: str, quantity: float, cost_basis: float
) -> None:
    """Add a holding."""
    from portfolio_prism.core import AssetClass, HoldingCreate, HoldingExistsError

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            return await store.create_holding(
                HoldingCreate(
                    type=AssetClass(asset_type.lower()),
                    symbol=symbol,
                    quantity=quantity,
                    cost_basis=cost_basis,
                )
            )
        finally:
            await store.close()

    try:
        holding = _run_async(_run())
    except HoldingExistsError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)
    console.print(f"Added holding [bold]{holding.symbol}[/bold] (id {holding.id})")


@holdings.command("update")
@click.argument("holding_id", type=int)
@click.option("--quantity", "-q", type=float, default=None, help="New quantity.")
@click.option("--cost-basis", type=float, default=None, help="New total cost basis.")
@click.pass_context
def update_holding(
    ctx: click.Context, holding_id: int, quantity: float | None, cost_basis: float | None
) -> None:
    """Update a holding's quantity and/or cost basis."""
    from portfolio_prism.core import HoldingNotFoundError, HoldingUpdate

    if quantity is None and cost_basis is None:
        raise click.UsageError("Provide --quantity and/or --cost-basis")

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            return await store.update_holding(
                holding_id, HoldingUpdate(quantity=quantity, cost_basis=cost_basis)
            )
        finally:
            await store.close()

    try:
        holding = _run_async(_run())
    except HoldingNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)
    console.print(f"Updated holding [bold]{holding.symbol}[/bold] (id {holding.id})")


@holdings.command("remove")
@click.argument("holding_id", type=int)
@click.pass_context
def remove_holding(ctx: click.Context, holding_id: int) -> None:
    """Delete a holding."""
    from portfolio_prism.core import HoldingNotFoundError

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            await store.delete_holding(holding_id)
        finally:
            await store.close()

    try:
        _run_async(_run())
    except HoldingNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)
    console.print(f"Removed holding {holding_id}")


# ---------------------------------------------------------------------------
# health / rate
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check every configured price provider."""

    async def _run():
        engine = _build_engine(_load_config(ctx))
        try:
            return await engine.health()
        finally:
            await engine.close()

    results = _run_async(_run())
    if not results:
        console.print("[yellow]No price providers configured.[/yellow]")
        return

    table = Table(title="Provider Health")
    table.add_column("Provider", style="bold")
    table.add_column("Status")
    for name, ok in results.items():
        table.add_row(name, "[green]ok[/green]" if ok else "[red]unhealthy[/red]")
    console.print(table)
    if not all(results.values()):
        raise SystemExit(1)


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output raw JSON.")
@click.pass_context
def rate(ctx: click.Context, as_json: bool) -> None:
    """Show the USD/TRY exchange rate (stablecoin-derived approximation)."""
    from portfolio_prism.core import ProviderError

    async def _run():
        engine = _build_engine(_load_config(ctx))
        try:
            return await engine.exchange_rate()
        finally:
            await engine.close()

    try:
        result = _run_async(_run())
    except ProviderError as exc:
        console.print(f"[red]Exchange rate unavailable: {exc}[/red]")
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        console.print(
            f"1 {result.base} = [bold]{result.rate:,.4f}[/bold] {result.quote} "
            f"(source: {result.source}, {result.last_updated:%Y-%m-%d %H:%M:%S})"
        )


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default from config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    if ctx.obj.get("config_path"):
        # The app factory reloads config in the server process
        os.environ["PRISM_CONFIG"] = ctx.obj["config_path"]
    host = host or config.server.host
    port = port or config.server.port

    console.print(f"Starting portfolio-prism API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "portfolio_prism.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        timeout_graceful_shutdown=int(config.server.close_timeout),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
