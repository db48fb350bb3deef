"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portfolio_prism.api.deps import AppState
from portfolio_prism.api.routes import router
from portfolio_prism.core.config import PrismConfig, load_config
from portfolio_prism.core.exceptions import (
    CapabilityNotSupportedError,
    ConfigError,
    HoldingExistsError,
    HoldingNotFoundError,
    PriceNotFoundError,
    PrismError,
    ProviderError,
    StorageError,
)
from portfolio_prism.portfolio.engine import PortfolioEngine
from portfolio_prism.portfolio.store import create_store, seed_from_config
from portfolio_prism.prices.factory import ProviderSet, build_providers

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
_STATUS_MAP: list[tuple[type[PrismError], int]] = [
    (HoldingNotFoundError, 404),
    (PriceNotFoundError, 404),
    (HoldingExistsError, 409),
    (CapabilityNotSupportedError, 503),
    (ProviderError, 503),
    (ConfigError, 400),
    (StorageError, 500),
]


def status_for(exc: PrismError) -> int:
    for exc_type, status in _STATUS_MAP:
        if isinstance(exc, exc_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config
    providers = app.state._pending_providers or build_providers(config)
    store = await create_store(config.storage)
    await seed_from_config(store, config)

    engine = PortfolioEngine(
        fund_provider=providers.fund,
        crypto_provider=providers.crypto,
        timeout=config.server.request_timeout,
    )
    app.state.app_state = AppState(config=config, store=store, engine=engine)

    yield

    logger.info("Shutting down, closing providers and store")
    try:
        async with asyncio.timeout(config.server.close_timeout):
            await engine.close()
    except TimeoutError:
        logger.error(
            "Provider shutdown exceeded %.0fs, giving up", config.server.close_timeout
        )
    await store.close()


def create_app(
    config: PrismConfig | None = None,
    providers: ProviderSet | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without ``config`` the configuration is loaded here, so CORS and the
    lifespan share one config. ``providers`` overrides the provider chain
    built from config.
    """
    import portfolio_prism

    if config is None:
        config = load_config()

    app = FastAPI(
        title="Portfolio Prism API",
        description="Fund and crypto portfolio valuation",
        version=portfolio_prism.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config
    app.state._pending_providers = providers

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.exception_handler(PrismError)
    async def prism_exception_handler(request: Request, exc: PrismError):
        status = status_for(exc)
        if status >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
