"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from portfolio_prism.core.models import Holding


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health. ``status`` is "ok" or "degraded"."""

    status: str = "ok"
    version: str
    storage: bool
    providers: dict[str, bool]


class VersionResponse(BaseModel):
    version: str


# -- Holdings --


class HoldingListResponse(BaseModel):
    total: int
    items: list[Holding]


# -- Exchange rate --


class ExchangeRateResponse(BaseModel):
    """Response for GET /api/exchange-rate, e.g. USD -> TRY."""

    from_currency: str = Field(serialization_alias="from")
    to_currency: str = Field(serialization_alias="to")
    rate: float
    last_updated: datetime
    source: str


# -- History --


class HistoryPoint(BaseModel):
    """Portfolio value at one point in time."""

    timestamp: datetime
    total_value: float
    total_cost_basis: float


class HistoryResponse(BaseModel):
    """Portfolio value history. Snapshots are not recorded yet, so always empty."""

    items: list[HistoryPoint] = Field(default_factory=list)
