"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from portfolio_prism.core.config import PrismConfig
from portfolio_prism.portfolio.engine import PortfolioEngine
from portfolio_prism.portfolio.store import HoldingStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: PrismConfig
    store: HoldingStore
    engine: PortfolioEngine


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_store(request: Request) -> HoldingStore:
    """Dependency: retrieve the holdings store."""
    return request.app.state.app_state.store


def get_engine(request: Request) -> PortfolioEngine:
    """Dependency: retrieve the valuation engine."""
    return request.app.state.app_state.engine
