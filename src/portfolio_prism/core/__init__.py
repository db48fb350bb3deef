"""portfolio_prism.core: foundation types, config, and exceptions."""

from portfolio_prism.core.config import (
    BinanceConfig,
    CoinGeckoConfig,
    CryptoConfig,
    PrismConfig,
    ServerConfig,
    StorageConfig,
    TefasConfig,
    load_config,
)
from portfolio_prism.core.exceptions import (
    CapabilityNotSupportedError,
    ConfigError,
    HoldingExistsError,
    HoldingNotFoundError,
    PriceNotFoundError,
    PrismError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    StorageError,
)
from portfolio_prism.core.models import (
    AssetClass,
    AssetClassValuation,
    ExchangeRate,
    Holding,
    HoldingCreate,
    HoldingId,
    HoldingUpdate,
    PortfolioSummary,
    Price,
    Symbol,
    ValuedAsset,
    pnl_percent,
)

__all__ = [
    # Type aliases
    "HoldingId",
    "Symbol",
    # Enums
    "AssetClass",
    # Price models
    "Price",
    "ExchangeRate",
    # Holding models
    "Holding",
    "HoldingCreate",
    "HoldingUpdate",
    # Valuation models
    "ValuedAsset",
    "AssetClassValuation",
    "PortfolioSummary",
    "pnl_percent",
    # Config
    "PrismConfig",
    "ServerConfig",
    "StorageConfig",
    "TefasConfig",
    "CryptoConfig",
    "BinanceConfig",
    "CoinGeckoConfig",
    "load_config",
    # Exceptions
    "PrismError",
    "ConfigError",
    "ProviderError",
    "ProviderTimeoutError",
    "RateLimitError",
    "CapabilityNotSupportedError",
    "PriceNotFoundError",
    "StorageError",
    "HoldingNotFoundError",
    "HoldingExistsError",
]
