"""Tests for the SQLite holdings store."""

import pytest

from portfolio_prism.core.config import (
    CryptoConfig,
    BinanceConfig,
    CryptoHoldingConfig,
    FundHoldingConfig,
    PrismConfig,
    StorageConfig,
    TefasConfig,
)
from portfolio_prism.core.exceptions import HoldingExistsError, HoldingNotFoundError
from portfolio_prism.core.models import AssetClass, HoldingCreate, HoldingUpdate
from portfolio_prism.portfolio.store import (
    HoldingStore,
    SqliteHoldingStore,
    create_store,
    seed_from_config,
)


# --- Fixtures ---


@pytest.fixture
async def store():
    """Create an in-memory SqliteHoldingStore for testing."""
    s = SqliteHoldingStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


def _fund(symbol="KUT", quantity=100.0, cost_basis=1200.0) -> HoldingCreate:
    return HoldingCreate(
        type=AssetClass.FUND, symbol=symbol, quantity=quantity, cost_basis=cost_basis
    )


def _crypto(symbol="BTCUSDT", quantity=0.5, cost_basis=20000.0) -> HoldingCreate:
    return HoldingCreate(
        type=AssetClass.CRYPTO, symbol=symbol, quantity=quantity, cost_basis=cost_basis
    )


# --- Lifecycle ---


class TestLifecycle:
    def test_satisfies_protocol(self):
        assert isinstance(SqliteHoldingStore(StorageConfig(sqlite_path=":memory:")), HoldingStore)

    async def test_health_check(self, store):
        assert await store.health_check() is True

    async def test_health_check_after_close(self):
        s = SqliteHoldingStore(StorageConfig(sqlite_path=":memory:"))
        await s.initialize()
        await s.close()
        assert await s.health_check() is False

    async def test_file_store_creates_directory_and_persists(self, tmp_path):
        path = tmp_path / "nested" / "prism.db"
        s = await create_store(StorageConfig(sqlite_path=str(path)))
        await s.create_holding(_fund())
        await s.close()

        assert path.exists()
        reopened = await create_store(StorageConfig(sqlite_path=str(path)))
        try:
            holdings = await reopened.list_holdings()
            assert [h.symbol for h in holdings] == ["KUT"]
        finally:
            await reopened.close()

    async def test_migrations_not_reapplied(self, tmp_path):
        path = str(tmp_path / "prism.db")
        for _ in range(2):
            s = await create_store(StorageConfig(sqlite_path=path))
            assert await s._get_schema_version() == 1
            await s.close()


# --- CRUD ---


class TestCrud:
    async def test_create_and_get(self, store):
        created = await store.create_holding(_fund())
        assert created.id > 0
        assert created.symbol == "KUT"
        assert created.created_at == created.updated_at

        fetched = await store.get_holding(created.id)
        assert fetched == created

    async def test_duplicate_type_symbol_rejected(self, store):
        await store.create_holding(_fund())
        with pytest.raises(HoldingExistsError) as exc_info:
            await store.create_holding(_fund(quantity=1))
        assert exc_info.value.context == {"type": "fund", "symbol": "KUT"}

    async def test_same_symbol_different_type_allowed(self, store):
        await store.create_holding(_fund(symbol="ABC"))
        await store.create_holding(_crypto(symbol="ABC"))
        assert len(await store.list_holdings()) == 2

    async def test_store_usable_after_duplicate(self, store):
        await store.create_holding(_fund())
        with pytest.raises(HoldingExistsError):
            await store.create_holding(_fund())
        await store.create_holding(_fund(symbol="TI2"))
        assert len(await store.list_holdings()) == 2

    async def test_list_filters_by_type(self, store):
        await store.create_holding(_fund("KUT"))
        await store.create_holding(_fund("AFT"))
        await store.create_holding(_crypto("BTCUSDT"))

        funds = await store.list_holdings(AssetClass.FUND)
        assert [h.symbol for h in funds] == ["AFT", "KUT"]
        cryptos = await store.list_holdings(AssetClass.CRYPTO)
        assert [h.symbol for h in cryptos] == ["BTCUSDT"]
        assert len(await store.list_holdings()) == 3

    async def test_get_by_symbol(self, store):
        created = await store.create_holding(_crypto())
        found = await store.get_holding_by_symbol(AssetClass.CRYPTO, "BTCUSDT")
        assert found.id == created.id
        with pytest.raises(HoldingNotFoundError):
            await store.get_holding_by_symbol(AssetClass.FUND, "BTCUSDT")

    async def test_get_missing(self, store):
        with pytest.raises(HoldingNotFoundError):
            await store.get_holding(999)

    async def test_partial_update(self, store):
        created = await store.create_holding(_fund())

        updated = await store.update_holding(created.id, HoldingUpdate(quantity=150))

        assert updated.quantity == 150
        assert updated.cost_basis == 1200.0
        assert updated.updated_at >= created.updated_at
        assert (await store.get_holding(created.id)).quantity == 150

    async def test_update_cost_basis_only(self, store):
        created = await store.create_holding(_fund())
        updated = await store.update_holding(created.id, HoldingUpdate(cost_basis=999.0))
        assert updated.quantity == 100.0
        assert updated.cost_basis == 999.0

    async def test_update_missing(self, store):
        with pytest.raises(HoldingNotFoundError):
            await store.update_holding(42, HoldingUpdate(quantity=1))

    async def test_delete(self, store):
        created = await store.create_holding(_fund())
        await store.delete_holding(created.id)
        with pytest.raises(HoldingNotFoundError):
            await store.get_holding(created.id)

    async def test_delete_missing(self, store):
        with pytest.raises(HoldingNotFoundError):
            await store.delete_holding(42)


# --- Bulk / seeding ---


class TestBulkAndSeed:
    async def test_is_empty(self, store):
        assert await store.is_empty() is True
        await store.create_holding(_fund())
        assert await store.is_empty() is False

    async def test_bulk_create_skips_duplicates(self, store):
        await store.create_holding(_fund("KUT"))
        inserted = await store.bulk_create([_fund("KUT"), _fund("TI2"), _crypto()])
        assert inserted == 2
        assert len(await store.list_holdings()) == 3

    async def test_bulk_create_empty(self, store):
        assert await store.bulk_create([]) == 0

    async def test_seed_from_config(self, store):
        config = PrismConfig(
            tefas=TefasConfig(
                holdings=[FundHoldingConfig(code="KUT", quantity=100, cost_basis=1200)]
            ),
            crypto=CryptoConfig(
                binance=BinanceConfig(
                    holdings=[CryptoHoldingConfig(symbol="btcusdt", quantity=0.5)]
                )
            ),
        )

        assert await seed_from_config(store, config) == 2

        holdings = await store.list_holdings()
        assert {(h.type, h.symbol) for h in holdings} == {
            (AssetClass.FUND, "KUT"),
            (AssetClass.CRYPTO, "BTCUSDT"),
        }

    async def test_seed_skipped_when_not_empty(self, store):
        await store.create_holding(_crypto("ETHUSDT"))
        config = PrismConfig(
            tefas=TefasConfig(holdings=[FundHoldingConfig(code="KUT", quantity=1)])
        )
        assert await seed_from_config(store, config) == 0
        assert len(await store.list_holdings()) == 1

    async def test_seed_with_no_config_holdings(self, store):
        assert await seed_from_config(store, PrismConfig()) == 0
