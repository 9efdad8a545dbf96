"""Markets subcommand: fetch, list, enhance, cache-status, clear-cache."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer

from predbot.errors import UpstreamUnavailable
from predbot.models import Market
from predbot.services import MarketService
from predbot.storage.db import get_connection, init_schema
from predbot.storage.markets import list_markets as storage_list_markets

app = typer.Typer(help="Market fetching, enhancement and cache control")

T = TypeVar("T")


def _run_with_service(ctx: typer.Context, fn: Callable[[MarketService], Awaitable[T]]) -> T:
    """Open the store, build the service, run fn on an event loop, clean up."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    service = MarketService.from_config(settings.market_service_config(), conn)

    async def _go() -> Any:
        try:
            return await fn(service)
        finally:
            await service.close()

    try:
        return asyncio.run(_go())
    finally:
        conn.close()


def _echo_market(i: int, m: Market) -> None:
    tokens = "ok" if m.is_enhanced else "--"
    typer.echo(
        f"  {i:>2}. {m.question[:60]:<60}  yes {m.yes_price:.3f}  no {m.no_price:.3f}  "
        f"vol {m.volume_24h:>10.0f}  tokens {tokens}  {m.id or m.natural_id}"
    )


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Markets to return (default from config)"),
    order: str = typer.Option("createdAt", "--order", help="Gamma sort field"),
    ascending: bool = typer.Option(False, "--ascending/--descending", help="Gamma sort direction"),
) -> None:
    """Return tradable markets, from the cache when fresh, else from Gamma + CLOB."""
    try:
        markets = _run_with_service(ctx, lambda s: s.fetch_markets(limit, order=order, ascending=ascending))
    except UpstreamUnavailable as e:
        typer.echo(f"Failed to fetch markets: {e}", err=True)
        raise typer.Exit(1)
    for i, m in enumerate(markets, 1):
        _echo_market(i, m)
    typer.echo(f"Total: {len(markets)} markets")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    active_only: bool = typer.Option(True, "--active/--all", help="Only active, non-archived markets"),
) -> None:
    """List markets in the local store without touching upstream APIs."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = storage_list_markets(conn, active_only=active_only)
        for i, m in enumerate(rows, 1):
            _echo_market(i, m)
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("enhance")
def enhance(
    ctx: typer.Context,
    limit: int = typer.Option(500, "--limit", "-n", help="Max stored markets to examine"),
) -> None:
    """Attach CLOB token ids and prices to stored markets that lack them."""
    summary = _run_with_service(ctx, lambda s: s.enhance_all_markets(limit))
    typer.echo(f"Enhanced {summary.enhanced}/{summary.candidates} markets ({summary.dropped} dropped).")


@app.command("cache-status")
def cache_status(ctx: typer.Context) -> None:
    """Show age of cached market data against the TTL."""
    status = _run_with_service(ctx, lambda s: s.cache_status())
    if not status.has_cache:
        typer.echo("No cached markets.")
        return
    state = "fresh" if status.age_ms < status.ttl_ms else "stale"
    typer.echo(f"Cache age {status.age_ms / 1000:.0f}s / TTL {status.ttl_ms / 1000:.0f}s ({state})")


@app.command("clear-cache")
def clear_cache(ctx: typer.Context) -> None:
    """Mark cached markets stale; the next fetch goes to the upstream APIs."""
    count = _run_with_service(ctx, lambda s: s.clear_cache())
    typer.echo(f"Marked {count} markets stale.")
