"""FastAPI backend: market list for the dashboard and bot."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predbot.api.schemas import (
    CacheStatusResponse,
    ClearCacheResponse,
    EnhanceResponse,
    ErrorResponse,
    HealthResponse,
    MarketsListResponse,
    MarketView,
)
from predbot.config import configure_logging, get_settings
from predbot.errors import UpstreamUnavailable
from predbot.services import MarketService
from predbot.storage.db import get_connection, init_schema

log = structlog.get_logger(__name__)

# Set by run_api() so lifespan picks the same profile as the CLI.
_config_profile: str | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings(_config_profile)
    configure_logging(settings)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    service = MarketService.from_config(settings.market_service_config(), conn)
    app.state.market_service = service
    try:
        yield
    finally:
        await service.close()
        conn.close()


app = FastAPI(title="predbot API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _service(request: Request) -> MarketService:
    return request.app.state.market_service


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
    log.error("markets_request_failed", source=exc.source, error=exc.detail)
    return _error_json("upstream_unavailable", "Failed to fetch markets", status_code=502)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/markets", response_model=MarketsListResponse)
async def markets_list(
    request: Request,
    limit: int | None = Query(None, ge=1, le=100, description="Number of markets (default from config)"),
    order: str = Query("createdAt"),
    ascending: bool = Query(False),
) -> MarketsListResponse:
    markets = await _service(request).fetch_markets(limit, order=order, ascending=ascending)
    views = [MarketView.from_market(m) for m in markets]
    return MarketsListResponse(markets=views, total=len(views))


@app.post("/markets/enhance", response_model=EnhanceResponse)
async def markets_enhance(request: Request) -> EnhanceResponse:
    summary = await _service(request).enhance_all_markets()
    return EnhanceResponse(candidates=summary.candidates, enhanced=summary.enhanced, dropped=summary.dropped)


@app.get("/markets/cache", response_model=CacheStatusResponse)
async def markets_cache_status(request: Request) -> CacheStatusResponse:
    status = await _service(request).cache_status()
    return CacheStatusResponse(has_cache=status.has_cache, age=status.age_ms, ttl=status.ttl_ms)


@app.delete("/markets/cache", response_model=ClearCacheResponse)
async def markets_cache_clear(request: Request) -> ClearCacheResponse:
    return ClearCacheResponse(cleared=await _service(request).clear_cache())


@app.get(
    "/markets/{market_id}",
    response_model=MarketView,
    responses={404: {"model": ErrorResponse}},
)
async def market_detail(request: Request, market_id: str):
    market = await _service(request).get_market(market_id)
    if market is None:
        return _error_json("not_found", f"Market {market_id} not found")
    return MarketView.from_market(market)


def run_api(host: str = "127.0.0.1", port: int = 8000, profile: str | None = None) -> None:
    global _config_profile
    _config_profile = profile
    import uvicorn

    uvicorn.run("predbot.api.main:app", host=host, port=port, reload=False)
