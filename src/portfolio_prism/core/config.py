"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from portfolio_prism.core.exceptions import ConfigError


class ServerConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = ["*"]
    request_timeout: float = 30.0
    close_timeout: float = 30.0

    @field_validator("request_timeout", "close_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v


class StorageConfig(BaseModel):
    """Holdings database configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/prism.db"


class FundHoldingConfig(BaseModel):
    """A fund position declared in the config file (seeded into an empty store)."""

    model_config = ConfigDict(frozen=True)

    code: str
    quantity: float
    cost_basis: float = 0.0


class CryptoHoldingConfig(BaseModel):
    """A crypto position declared in the config file (seeded into an empty store)."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    quantity: float
    cost_basis: float = 0.0


class TefasConfig(BaseModel):
    """TEFAS fund-price provider configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    headless: bool = True
    fund_type: str = "YAT"
    cache_ttl: float = 300.0
    max_consecutive_failures: int = 3
    holdings: list[FundHoldingConfig] = []

    @field_validator("max_consecutive_failures")
    @classmethod
    def failures_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        return v


class BinanceConfig(BaseModel):
    """Binance market-data provider configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = "https://api.binance.com"
    cache_ttl: float = 30.0
    request_timeout: float = 10.0
    holdings: list[CryptoHoldingConfig] = []


class CoinGeckoConfig(BaseModel):
    """CoinGecko market-data provider configuration (fallback for Binance)."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    api_key: str | None = None
    base_url: str = "https://api.coingecko.com/api/v3"
    cache_ttl: float = 60.0
    exchange_rate_ttl: float = 300.0
    request_timeout: float = 10.0
    rate_limit: int = 30


class CryptoConfig(BaseModel):
    """Aggregated crypto provider configuration."""

    model_config = ConfigDict(frozen=True)

    binance: BinanceConfig = BinanceConfig()
    coingecko: CoinGeckoConfig = CoinGeckoConfig()


class PrismConfig(BaseModel):
    """Root configuration for the entire portfolio-prism system."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig = ServerConfig()
    storage: StorageConfig = StorageConfig()
    tefas: TefasConfig = TefasConfig()
    crypto: CryptoConfig = CryptoConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "PRISM_",
) -> PrismConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (PRISM_SERVER__PORT, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        PRISM_TEFAS__HEADLESS=false  ->  tefas.headless = False

    Shortcuts: ``PRISM_PORT`` (server.port), ``PRISM_DB_PATH``
    (storage.sqlite_path), ``COINGECKO_API_KEY`` (crypto.coingecko.api_key).
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        for env_key, path in _ENV_SHORTCUTS.items():
            value = os.environ.get(env_key)
            if value:
                _set_path(merged, path, value)
        return PrismConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


_ENV_SHORTCUTS: dict[str, tuple[str, ...]] = {
    "PRISM_PORT": ("server", "port"),
    "PRISM_DB_PATH": ("storage", "sqlite_path"),
    "COINGECKO_API_KEY": ("crypto", "coingecko", "api_key"),
}


def _set_path(target: dict, path: tuple[str, ...], value: str) -> None:
    for part in path[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        else:
            target[part] = dict(target[part])
        target = target[part]
    target[path[-1]] = value


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("PRISM_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from PRISM_CONFIG not found: {env_path}",
                context={"field": "PRISM_CONFIG", "value": env_path},
            )
        return p

    default = Path("config.yaml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            else:
                target[part] = dict(target[part])
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
