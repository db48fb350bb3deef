"""Custom exception hierarchy for portfolio-prism."""

from typing import Any


class PrismError(Exception):
    """Base exception for all portfolio-prism errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(PrismError):
    """Invalid or missing configuration.

    Raised by load_config() during startup, and by providers whose runtime
    dependency (e.g. the Playwright browser engine) is unavailable. Fatal
    for the affected provider only.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class ProviderError(PrismError):
    """A price source could not serve the request.

    Policy: adapters recover locally with stale cache data where they can.
    When raised, the fallback composer tries its secondary provider and the
    portfolio engine degrades to placeholder valuations.

    Context keys:
        provider (str): the provider name
        symbols (list[str]): the requested symbols
    """


class ProviderTimeoutError(ProviderError):
    """The caller-supplied timeout elapsed before the provider answered.

    Context keys:
        timeout (float): the timeout in seconds
    """


class RateLimitError(ProviderError):
    """Upstream rate limit exceeded (HTTP 429).

    Policy: no retry inside the core. The composer falls back, the engine
    degrades.

    Context keys:
        retry_after (int | None): seconds to wait, if the source said
    """


class CapabilityNotSupportedError(ProviderError):
    """No provider in the chain supports the requested optional capability.

    Context keys:
        capability (str): e.g. "exchange_rate"
    """


class PriceNotFoundError(ProviderError):
    """A single-symbol lookup produced no price.

    Context keys:
        symbol (str): the requested symbol
        asset_class (str): "fund" or "crypto"
    """


class StorageError(PrismError):
    """Database operation failed.

    Policy: raise immediately. Data integrity is critical.

    Context keys:
        operation (str): "insert", "query", "migrate", etc.
        table (str): the table involved
    """


class HoldingNotFoundError(StorageError):
    """No holding exists with the given id (or type/symbol).

    Context keys:
        holding_id: int | None
        symbol: str | None
    """


class HoldingExistsError(StorageError):
    """A holding for this (type, symbol) pair already exists.

    Context keys:
        type: str
        symbol: str
    """
