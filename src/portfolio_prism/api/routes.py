"""FastAPI route definitions for the Portfolio Prism API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

import portfolio_prism
from portfolio_prism.api.deps import AppState, get_app_state, get_engine, get_store
from portfolio_prism.api.schemas import (
    ExchangeRateResponse,
    HealthResponse,
    HistoryResponse,
    HoldingListResponse,
    VersionResponse,
)
from portfolio_prism.core.exceptions import HoldingNotFoundError
from portfolio_prism.core.models import (
    AssetClass,
    AssetClassValuation,
    Holding,
    HoldingCreate,
    HoldingUpdate,
    PortfolioSummary,
    ValuedAsset,
)
from portfolio_prism.portfolio.engine import PortfolioEngine
from portfolio_prism.portfolio.store import HoldingStore

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    state: AppState = Depends(get_app_state),
):
    """Storage and provider health. 206 when anything is unhealthy."""
    storage_ok = await state.store.health_check()
    providers = await state.engine.health()
    healthy = storage_ok and all(providers.values())
    if not healthy:
        response.status_code = 206
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=portfolio_prism.__version__,
        storage=storage_ok,
        providers=providers,
    )


@router.get("/version", response_model=VersionResponse)
async def version():
    return VersionResponse(version=portfolio_prism.__version__)


# -- Portfolio --


@router.get("/portfolio/summary", response_model=PortfolioSummary)
async def portfolio_summary(
    store: HoldingStore = Depends(get_store),
    engine: PortfolioEngine = Depends(get_engine),
):
    """Full valuation. Always lists every holding, even when prices are down."""
    holdings = await store.list_holdings()
    return await engine.summarize(holdings)


@router.get("/portfolio/history", response_model=HistoryResponse)
async def portfolio_history():
    return HistoryResponse()


# -- Prices --


async def _value_class(
    asset_class: AssetClass, store: HoldingStore, engine: PortfolioEngine
) -> AssetClassValuation:
    holdings = await store.list_holdings(asset_class)
    return await engine.value_asset_class(asset_class, holdings)


async def _lookup(
    asset_class: AssetClass,
    symbol: str,
    store: HoldingStore,
    engine: PortfolioEngine,
) -> ValuedAsset:
    symbol = symbol.upper()
    try:
        holding = await store.get_holding_by_symbol(asset_class, symbol)
    except HoldingNotFoundError:
        holding = None
    return await engine.lookup(asset_class, symbol, holding)


@router.get("/funds", response_model=AssetClassValuation)
async def list_funds(
    store: HoldingStore = Depends(get_store),
    engine: PortfolioEngine = Depends(get_engine),
):
    """Valued fund holdings."""
    return await _value_class(AssetClass.FUND, store, engine)


@router.get("/funds/{code}", response_model=ValuedAsset)
async def get_fund(
    code: str,
    store: HoldingStore = Depends(get_store),
    engine: PortfolioEngine = Depends(get_engine),
):
    """Price one fund, valued against its holding if there is one."""
    return await _lookup(AssetClass.FUND, code, store, engine)


@router.get("/crypto", response_model=AssetClassValuation)
async def list_crypto(
    store: HoldingStore = Depends(get_store),
    engine: PortfolioEngine = Depends(get_engine),
):
    """Valued crypto holdings."""
    return await _value_class(AssetClass.CRYPTO, store, engine)


@router.get("/crypto/{symbol}", response_model=ValuedAsset)
async def get_crypto(
    symbol: str,
    store: HoldingStore = Depends(get_store),
    engine: PortfolioEngine = Depends(get_engine),
):
    return await _lookup(AssetClass.CRYPTO, symbol, store, engine)


# -- Holdings --


@router.get("/holdings", response_model=HoldingListResponse)
async def list_holdings(
    asset_class: AssetClass | None = Query(
        None, alias="type", description="Filter by asset class"
    ),
    store: HoldingStore = Depends(get_store),
):
    holdings = await store.list_holdings(asset_class)
    return HoldingListResponse(total=len(holdings), items=holdings)


@router.post("/holdings", response_model=Holding, status_code=201)
async def create_holding(
    request: HoldingCreate,
    store: HoldingStore = Depends(get_store),
):
    """Add a holding. 409 if one already exists for the same type and symbol."""
    return await store.create_holding(request)


@router.get("/holdings/{holding_id}", response_model=Holding)
async def get_holding(
    holding_id: int,
    store: HoldingStore = Depends(get_store),
):
    return await store.get_holding(holding_id)


@router.put("/holdings/{holding_id}", response_model=Holding)
async def update_holding(
    holding_id: int,
    request: HoldingUpdate,
    store: HoldingStore = Depends(get_store),
):
    """Partially update quantity and/or cost basis."""
    return await store.update_holding(holding_id, request)


@router.delete("/holdings/{holding_id}", status_code=204)
async def delete_holding(
    holding_id: int,
    store: HoldingStore = Depends(get_store),
):
    await store.delete_holding(holding_id)
    return Response(status_code=204)


# -- Exchange rate --


@router.get("/exchange-rate", response_model=ExchangeRateResponse)
async def exchange_rate(engine: PortfolioEngine = Depends(get_engine)):
    """USD/TRY. Derived from a stablecoin quote, so an approximation of FX."""
    rate = await engine.exchange_rate()
    return ExchangeRateResponse(
        from_currency=rate.base,
        to_currency=rate.quote,
        rate=rate.rate,
        last_updated=rate.last_updated,
        source=rate.source,
    )
