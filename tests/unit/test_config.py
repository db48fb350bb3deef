"""Tests for portfolio_prism.core.config."""

import pytest
from pydantic import ValidationError

from portfolio_prism.core.config import (
    PrismConfig,
    ServerConfig,
    TefasConfig,
    _auto_cast,
    _merge_env_vars,
    load_config,
)
from portfolio_prism.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and any ./config.yaml."""
    for key in ("PRISM_CONFIG", "PRISM_PORT", "PRISM_DB_PATH", "COINGECKO_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class TestModels:
    def test_defaults(self):
        c = PrismConfig()
        assert c.server.port == 8080
        assert c.storage.sqlite_path == "./data/prism.db"
        assert c.tefas.cache_ttl == 300
        assert c.crypto.binance.cache_ttl == 30
        assert c.crypto.coingecko.cache_ttl == 60
        assert c.crypto.coingecko.api_key is None

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValidationError, match="timeouts must be > 0"):
            ServerConfig(close_timeout=0)

    def test_failure_threshold_must_be_positive(self):
        with pytest.raises(ValidationError, match="max_consecutive_failures"):
            TefasConfig(max_consecutive_failures=0)


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config()
        assert config.server.port == 8080

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            """
server:
  port: 9090
tefas:
  headless: false
  holdings:
    - code: KUT
      quantity: 100
      cost_basis: 1200
crypto:
  binance:
    holdings:
      - symbol: BTCUSDT
        quantity: 0.5
  coingecko:
    enabled: false
"""
        )
        config = load_config(str(path))
        assert config.server.port == 9090
        assert config.tefas.headless is False
        assert config.tefas.holdings[0].code == "KUT"
        assert config.tefas.holdings[0].cost_basis == 1200
        assert config.crypto.binance.holdings[0].symbol == "BTCUSDT"
        assert config.crypto.coingecko.enabled is False

    def test_default_config_yaml_in_cwd(self, tmp_path):
        (tmp_path / "config.yaml").write_text("server:\n  port: 7000\n")
        assert load_config().server.port == 7000

    def test_prism_config_env(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("storage:\n  sqlite_path: /tmp/x.db\n")
        monkeypatch.setenv("PRISM_CONFIG", str(path))
        assert load_config().storage.sqlite_path == "/tmp/x.db"

    def test_missing_explicit_file(self):
        with pytest.raises(ConfigError, match="not found"):
            load_config("/nonexistent/config.yaml")

    def test_missing_env_file(self, monkeypatch):
        monkeypatch.setenv("PRISM_CONFIG", "/nonexistent/config.yaml")
        with pytest.raises(ConfigError, match="PRISM_CONFIG"):
            load_config()

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("server: [unclosed\n")
        with pytest.raises(ConfigError, match="parse"):
            load_config(str(path))

    def test_validation_error_wrapped(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("server:\n  port: not-a-port\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_nested_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "c.yaml"
        path.write_text("tefas:\n  headless: true\n")
        monkeypatch.setenv("PRISM_TEFAS__HEADLESS", "false")
        assert load_config(str(path)).tefas.headless is False

    def test_shortcuts(self, monkeypatch):
        monkeypatch.setenv("PRISM_PORT", "9999")
        monkeypatch.setenv("PRISM_DB_PATH", "/data/holdings.db")
        monkeypatch.setenv("COINGECKO_API_KEY", "cg-demo-key")
        config = load_config()
        assert config.server.port == 9999
        assert config.storage.sqlite_path == "/data/holdings.db"
        assert config.crypto.coingecko.api_key == "cg-demo-key"


class TestEnvHelpers:
    def test_auto_cast(self):
        assert _auto_cast("true") is True
        assert _auto_cast("False") is False
        assert _auto_cast("42") == 42
        assert _auto_cast("1.5") == 1.5
        assert _auto_cast("hello") == "hello"

    def test_merge_nests_on_double_underscore(self, monkeypatch):
        monkeypatch.setenv("TEST_CRYPTO__BINANCE__CACHE_TTL", "15")
        merged = _merge_env_vars({"crypto": {"binance": {"enabled": True}}}, "TEST_")
        assert merged["crypto"]["binance"] == {"enabled": True, "cache_ttl": 15}

    def test_merge_does_not_mutate_base(self, monkeypatch):
        base = {"server": {"port": 1}}
        monkeypatch.setenv("TEST_SERVER__PORT", "2")
        _merge_env_vars(base, "TEST_")
        assert base["server"]["port"] == 1
