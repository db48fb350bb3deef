"""Tests for the FastAPI REST API module."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import portfolio_prism
from portfolio_prism.api.app import create_app, status_for
from portfolio_prism.core.config import (
    FundHoldingConfig,
    PrismConfig,
    ServerConfig,
    StorageConfig,
    TefasConfig,
)
from portfolio_prism.core.exceptions import (
    CapabilityNotSupportedError,
    ConfigError,
    HoldingExistsError,
    HoldingNotFoundError,
    PriceNotFoundError,
    PrismError,
    ProviderError,
    RateLimitError,
    StorageError,
)
from portfolio_prism.prices.factory import ProviderSet


# -- Fixtures --


def _make_config(tmp_path, fund_holdings=()):
    return PrismConfig(
        storage=StorageConfig(sqlite_path=str(tmp_path / "test.db")),
        tefas=TefasConfig(holdings=list(fund_holdings)),
    )


@pytest.fixture
def fund_provider(fake_provider):
    return fake_provider("tefas", prices={"KUT": 13.316, "TI2": 11.0})


@pytest.fixture
def crypto_provider(fake_provider):
    return fake_provider("binance", prices={"BTCUSDT": 60000.0}, rate=32.5)


@pytest.fixture
def app(tmp_path, fund_provider, crypto_provider):
    return create_app(
        config=_make_config(tmp_path),
        providers=ProviderSet(fund=fund_provider, crypto=crypto_provider),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _add(client, type_, symbol, quantity, cost_basis=0.0):
    resp = client.post(
        "/api/holdings",
        json={"type": type_, "symbol": symbol, "quantity": quantity, "cost_basis": cost_basis},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# -- Error mapping --


@pytest.mark.parametrize(
    "exc,status",
    [
        (HoldingNotFoundError("x"), 404),
        (PriceNotFoundError("x"), 404),
        (HoldingExistsError("x"), 409),
        (CapabilityNotSupportedError("x"), 503),
        (RateLimitError("x"), 503),
        (ProviderError("x"), 503),
        (ConfigError("x"), 400),
        (StorageError("x"), 500),
        (PrismError("x"), 500),
    ],
)
def test_status_mapping(exc, status):
    assert status_for(exc) == status


# -- Health / version --


class TestHealth:
    def test_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["storage"] is True
        assert body["providers"] == {"tefas": True, "binance": True}
        assert body["version"] == portfolio_prism.__version__

    def test_degraded(self, client, fund_provider):
        fund_provider.healthy = False
        resp = client.get("/api/health")
        assert resp.status_code == 206
        assert resp.json()["status"] == "degraded"
        assert resp.json()["providers"]["tefas"] is False

    def test_version(self, client):
        assert client.get("/api/version").json() == {"version": portfolio_prism.__version__}


# -- Holdings --


class TestHoldings:
    def test_crud(self, client):
        created = _add(client, "fund", "kut", 100, 1200)
        assert created["symbol"] == "KUT"
        hid = created["id"]

        assert client.get(f"/api/holdings/{hid}").json()["quantity"] == 100

        resp = client.put(f"/api/holdings/{hid}", json={"quantity": 150})
        assert resp.status_code == 200
        assert resp.json()["quantity"] == 150
        assert resp.json()["cost_basis"] == 1200

        assert client.delete(f"/api/holdings/{hid}").status_code == 204
        assert client.get(f"/api/holdings/{hid}").status_code == 404

    def test_list_and_filter(self, client):
        _add(client, "fund", "KUT", 1)
        _add(client, "crypto", "BTCUSDT", 1)

        assert client.get("/api/holdings").json()["total"] == 2
        cryptos = client.get("/api/holdings", params={"type": "crypto"}).json()
        assert [h["symbol"] for h in cryptos["items"]] == ["BTCUSDT"]

    def test_duplicate_is_conflict(self, client):
        _add(client, "fund", "KUT", 1)
        resp = client.post("/api/holdings", json={"type": "fund", "symbol": "KUT", "quantity": 2})
        assert resp.status_code == 409
        assert resp.json()["error"] == "HoldingExistsError"

    def test_invalid_body(self, client):
        resp = client.post("/api/holdings", json={"type": "stock", "symbol": "X", "quantity": 1})
        assert resp.status_code == 422

    def test_empty_update_rejected(self, client):
        hid = _add(client, "fund", "KUT", 1)["id"]
        assert client.put(f"/api/holdings/{hid}", json={}).status_code == 422

    def test_update_missing(self, client):
        assert client.put("/api/holdings/999", json={"quantity": 1}).status_code == 404

    def test_delete_missing(self, client):
        resp = client.delete("/api/holdings/999")
        assert resp.status_code == 404
        assert resp.json()["error"] == "HoldingNotFoundError"


# -- Portfolio --


class TestPortfolio:
    def test_summary(self, client):
        _add(client, "fund", "KUT", 100, 1200)
        _add(client, "crypto", "BTCUSDT", 0.5, 20000)

        body = client.get("/api/portfolio/summary").json()

        assert body["funds"]["value"] == pytest.approx(1331.6)
        assert body["cryptos"]["value"] == pytest.approx(30000.0)
        assert body["total_value"] == pytest.approx(31331.6)
        assert body["total_cost_basis"] == pytest.approx(21200.0)

    def test_summary_degrades_when_provider_fails(self, client, fund_provider):
        fund_provider.error = ProviderError("waf")
        _add(client, "fund", "KUT", 100, 1200)

        resp = client.get("/api/portfolio/summary")

        assert resp.status_code == 200
        funds = resp.json()["funds"]
        assert funds["degraded"] is True
        assert funds["assets"][0]["symbol"] == "KUT"
        assert funds["assets"][0]["stale"] is True
        assert funds["assets"][0]["value"] == 0

    def test_history_is_empty(self, client):
        assert client.get("/api/portfolio/history").json() == {"items": []}

    def test_seeded_from_config(self, tmp_path, fake_provider):
        config = _make_config(
            tmp_path, [FundHoldingConfig(code="KUT", quantity=100, cost_basis=1200)]
        )
        app = create_app(config=config, providers=ProviderSet())
        with TestClient(app) as c:
            body = c.get("/api/portfolio/summary").json()
        assert [a["symbol"] for a in body["funds"]["assets"]] == ["KUT"]
        assert body["funds"]["assets"][0]["stale"] is True


# -- Prices --


class TestPrices:
    def test_funds(self, client):
        _add(client, "fund", "KUT", 100, 1200)
        body = client.get("/api/funds").json()
        assert body["asset_class"] == "fund"
        assert body["assets"][0]["value"] == pytest.approx(1331.6)

    def test_fund_lookup_with_holding(self, client):
        _add(client, "fund", "KUT", 100, 1200)
        body = client.get("/api/funds/kut").json()
        assert body["symbol"] == "KUT"
        assert body["quantity"] == 100

    def test_fund_lookup_without_holding(self, client):
        body = client.get("/api/funds/TI2").json()
        assert body["price"] == 11.0
        assert body["quantity"] == 0

    def test_unknown_fund_404(self, client):
        resp = client.get("/api/funds/ZZZ")
        assert resp.status_code == 404
        assert resp.json()["error"] == "PriceNotFoundError"

    def test_crypto(self, client):
        _add(client, "crypto", "BTCUSDT", 0.5, 20000)
        body = client.get("/api/crypto").json()
        assert body["asset_class"] == "crypto"
        assert body["pnl"] == pytest.approx(10000.0)

    def test_crypto_lookup(self, client):
        assert client.get("/api/crypto/BTCUSDT").json()["price"] == 60000.0

    def test_crypto_lookup_provider_down(self, client, crypto_provider):
        crypto_provider.error = ProviderError("down")
        assert client.get("/api/crypto/BTCUSDT").status_code == 404


# -- Exchange rate --


class TestExchangeRate:
    def test_rate(self, client):
        body = client.get("/api/exchange-rate").json()
        assert body["from"] == "USD"
        assert body["to"] == "TRY"
        assert body["rate"] == 32.5
        assert "last_updated" in body

    def test_unsupported_is_503(self, tmp_path, fake_provider):
        app = create_app(
            config=_make_config(tmp_path),
            providers=ProviderSet(crypto=fake_provider("binance")),
        )
        with TestClient(app) as c:
            resp = c.get("/api/exchange-rate")
        assert resp.status_code == 503
        assert resp.json()["error"] == "CapabilityNotSupportedError"


def test_shutdown_closes_providers(tmp_path, fund_provider, crypto_provider):
    app = create_app(
        config=_make_config(tmp_path),
        providers=ProviderSet(fund=fund_provider, crypto=crypto_provider),
    )
    with TestClient(app):
        pass
    assert fund_provider.closed == 1
    assert crypto_provider.closed == 1


# -- CORS --


class TestCors:
    def test_configured_origins_limit_allow_origin(self, tmp_path):
        config = PrismConfig(
            server=ServerConfig(cors_origins=["https://prism.example"]),
            storage=StorageConfig(sqlite_path=str(tmp_path / "test.db")),
        )
        app = create_app(config=config, providers=ProviderSet())
        with TestClient(app) as c:
            allowed = c.get("/api/version", headers={"Origin": "https://prism.example"})
            denied = c.get("/api/version", headers={"Origin": "https://evil.example"})

        assert allowed.headers["access-control-allow-origin"] == "https://prism.example"
        assert "access-control-allow-origin" not in denied.headers

    def test_factory_without_config_loads_it(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(
            f"""
server:
  cors_origins: ["https://prism.example"]
storage:
  sqlite_path: {tmp_path / "prism.db"}
tefas:
  enabled: false
crypto:
  binance:
    enabled: false
  coingecko:
    enabled: false
"""
        )
        monkeypatch.setenv("PRISM_CONFIG", str(path))

        app = create_app()
        with TestClient(app) as c:
            resp = c.get("/api/version", headers={"Origin": "https://evil.example"})
            state = c.app.state.app_state

        assert resp.status_code == 200
        assert "access-control-allow-origin" not in resp.headers
        assert state.config.server.cors_origins == ["https://prism.example"]
