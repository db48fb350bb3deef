"""Holdings persistence and portfolio valuation."""

from portfolio_prism.portfolio.engine import PortfolioEngine
from portfolio_prism.portfolio.store import (
    HoldingStore,
    SqliteHoldingStore,
    create_store,
    seed_from_config,
)

__all__ = [
    "PortfolioEngine",
    "HoldingStore",
    "SqliteHoldingStore",
    "create_store",
    "seed_from_config",
]
