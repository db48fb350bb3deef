"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Type Aliases ---

Symbol = str
HoldingId = int

# --- Enumerations ---


class AssetClass(StrEnum):
    """Asset classes a holding can belong to."""

    FUND = "fund"
    CRYPTO = "crypto"


# --- Price Models ---


class Price(BaseModel):
    """A point-in-time quote for one tradable symbol.

    ``stale`` is True when the value is known or suspected to be outdated
    (non-trading day, or a cached value served after a fetch failure).
    Consumers must carry the flag through, never drop it.
    """

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    name: str
    price: float
    daily_change: float = 0.0
    daily_pct: float = 0.0
    last_updated: datetime
    stale: bool = False
    source: str = "unknown"

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"price must be >= 0, got {v}")
        return v

    def as_stale(self) -> Price:
        """Return a copy flagged as stale."""
        if self.stale:
            return self
        return self.model_copy(update={"stale": True})

    @classmethod
    def placeholder(
        cls, symbol: Symbol, name: str, now: datetime, source: str = "unknown"
    ) -> Price:
        """Zero-priced stale stand-in for a symbol the source could not price."""
        return cls(
            symbol=symbol,
            name=name,
            price=0.0,
            last_updated=now,
            stale=True,
            source=source,
        )


class ExchangeRate(BaseModel):
    """A fiat exchange rate, e.g. USD/TRY.

    Sources may derive this from a stablecoin quote (USDT priced in the
    quote currency), which tracks but does not equal the FX market rate.
    """

    model_config = ConfigDict(frozen=True)

    base: str = "USD"
    quote: str = "TRY"
    rate: float
    last_updated: datetime
    source: str = "unknown"

    @field_validator("rate")
    @classmethod
    def rate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"rate must be > 0, got {v}")
        return v


# --- Holding Models ---


class Holding(BaseModel):
    """A position in one symbol, as persisted by the holdings store."""

    model_config = ConfigDict(frozen=True)

    id: HoldingId
    type: AssetClass
    symbol: Symbol
    quantity: float
    cost_basis: float
    created_at: datetime
    updated_at: datetime

    @field_validator("quantity", "cost_basis")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"quantity and cost_basis must be >= 0, got {v}")
        return v


class HoldingCreate(BaseModel):
    """Fields required to create a holding. ``cost_basis`` is the total paid."""

    model_config = ConfigDict(frozen=True)

    type: AssetClass
    symbol: Symbol
    quantity: float
    cost_basis: float = 0.0

    @field_validator("symbol")
    @classmethod
    def symbol_not_blank(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @field_validator("quantity", "cost_basis")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"quantity and cost_basis must be >= 0, got {v}")
        return v


class HoldingUpdate(BaseModel):
    """Partial update: quantity and/or cost basis."""

    model_config = ConfigDict(frozen=True)

    quantity: float | None = None
    cost_basis: float | None = None

    @field_validator("quantity", "cost_basis")
    @classmethod
    def non_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError(f"quantity and cost_basis must be >= 0, got {v}")
        return v

    @model_validator(mode="after")
    def at_least_one_field(self) -> HoldingUpdate:
        if self.quantity is None and self.cost_basis is None:
            raise ValueError(
                "At least one field (quantity or cost_basis) must be provided"
            )
        return self


# --- Valuation Models ---


def pnl_percent(pnl: float, cost_basis: float) -> float:
    """P&L as a percentage of cost basis; 0 when there is no cost basis."""
    if cost_basis > 0:
        return pnl / cost_basis * 100
    return 0.0


class ValuedAsset(BaseModel):
    """A price joined with an optional holding. Built per request, never stored."""

    model_config = ConfigDict(frozen=True)

    asset_class: AssetClass
    symbol: Symbol
    name: str
    price: float
    daily_change: float = 0.0
    daily_pct: float = 0.0
    quantity: float = 0.0
    value: float = 0.0
    cost_basis: float = 0.0
    pnl: float = 0.0
    pnl_pct: float = 0.0
    last_updated: datetime
    stale: bool = False

    @classmethod
    def from_price(
        cls,
        price: Price,
        holding: Holding | None,
        asset_class: AssetClass,
    ) -> ValuedAsset:
        """Value a price against a holding. No holding means zero quantity and cost."""
        quantity = holding.quantity if holding is not None else 0.0
        cost_basis = holding.cost_basis if holding is not None else 0.0
        value = price.price * quantity
        pnl = value - cost_basis
        return cls(
            asset_class=asset_class,
            symbol=price.symbol,
            name=price.name,
            price=price.price,
            daily_change=price.daily_change,
            daily_pct=price.daily_pct,
            quantity=quantity,
            value=value,
            cost_basis=cost_basis,
            pnl=pnl,
            pnl_pct=pnl_percent(pnl, cost_basis),
            last_updated=price.last_updated,
            stale=price.stale,
        )

    @classmethod
    def placeholder(cls, holding: Holding, name: str, now: datetime) -> ValuedAsset:
        """A holding with no live price: zero value, cost basis kept, flagged stale."""
        return cls(
            asset_class=holding.type,
            symbol=holding.symbol,
            name=name,
            price=0.0,
            quantity=holding.quantity,
            value=0.0,
            cost_basis=holding.cost_basis,
            pnl=0.0,
            pnl_pct=0.0,
            last_updated=now,
            stale=True,
        )


class AssetClassValuation(BaseModel):
    """Valued assets of one class, with class totals."""

    model_config = ConfigDict(frozen=True)

    asset_class: AssetClass
    assets: list[ValuedAsset]
    value: float
    cost_basis: float
    pnl: float
    pnl_pct: float
    degraded: bool = False

    @classmethod
    def from_assets(
        cls,
        asset_class: AssetClass,
        assets: list[ValuedAsset],
        degraded: bool = False,
    ) -> AssetClassValuation:
        value = sum(a.value for a in assets)
        cost_basis = sum(a.cost_basis for a in assets)
        pnl = value - cost_basis
        return cls(
            asset_class=asset_class,
            assets=assets,
            value=value,
            cost_basis=cost_basis,
            pnl=pnl,
            pnl_pct=pnl_percent(pnl, cost_basis),
            degraded=degraded,
        )

    @property
    def stale(self) -> bool:
        """True if any asset in the class carries a stale price."""
        return any(a.stale for a in self.assets)


class PortfolioSummary(BaseModel):
    """Per-class valuations combined into a grand total."""

    model_config = ConfigDict(frozen=True)

    total_value: float
    total_cost_basis: float
    total_pnl: float
    total_pnl_pct: float
    funds: AssetClassValuation
    cryptos: AssetClassValuation
    last_updated: datetime

    @classmethod
    def combine(
        cls,
        funds: AssetClassValuation,
        cryptos: AssetClassValuation,
        now: datetime,
    ) -> PortfolioSummary:
        total_value = funds.value + cryptos.value
        total_cost_basis = funds.cost_basis + cryptos.cost_basis
        total_pnl = total_value - total_cost_basis
        return cls(
            total_value=total_value,
            total_cost_basis=total_cost_basis,
            total_pnl=total_pnl,
            total_pnl_pct=pnl_percent(total_pnl, total_cost_basis),
            funds=funds,
            cryptos=cryptos,
            last_updated=now,
        )
