"""Tests for obsidian.config — environment variable loading, validation and watchlist."""

import json

import pytest

from obsidian.config import default_watchlist, load_config, load_watchlist


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure Obsidian env vars are cleared between tests."""
    for var in [
        "COINGECKO_BASE_URL",
        "COINBASE_BASE_URL",
        "BINANCE_BASE_URL",
        "CANDLE_PROVIDER",
        "CANDLE_LIMIT",
        "TOP_N",
        "REFRESH_INTERVAL_SECONDS",
        "REQUEST_TIMEOUT_SECONDS",
        "ACCOUNT_USD",
        "WATCHLIST_PATH",
        "DB_PATH",
        "LOG_LEVEL",
        "API_PORT",
    ]:
        monkeypatch.delenv(var, raising=False)


def _no_env_file(tmp_path) -> str:
    # Non-existent env_path so load_dotenv doesn't pick up a real .env file
    return str(tmp_path / "nonexistent.env")


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        cfg = load_config(env_path=_no_env_file(tmp_path))
        assert cfg.coingecko_base_url == "https://api.coingecko.com/api/v3"
        assert cfg.coinbase_base_url == "https://api.exchange.coinbase.com"
        assert cfg.candle_provider == "coinbase"
        assert cfg.candle_limit == 240
        assert cfg.top_n == 10
        assert cfg.refresh_interval_seconds == 300
        assert cfg.request_timeout_seconds == 15.0
        assert cfg.account_usd == 1000.0
        assert cfg.db_path == "data/obsidian.db"
        assert cfg.log_level == "INFO"
        assert cfg.api_port == 8080

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TOP_N", "5")
        monkeypatch.setenv("CANDLE_PROVIDER", "Binance")
        monkeypatch.setenv("COINGECKO_BASE_URL", "http://localhost:9000/cg/")
        cfg = load_config(env_path=_no_env_file(tmp_path))
        assert cfg.top_n == 5
        assert cfg.candle_provider == "binance"
        assert cfg.coingecko_base_url == "http://localhost:9000/cg"

    def test_source_tag_follows_provider(self, monkeypatch, tmp_path):
        assert load_config(env_path=_no_env_file(tmp_path)).candle_source_tag == "COINBASE_1H"
        monkeypatch.setenv("CANDLE_PROVIDER", "binance")
        assert load_config(env_path=_no_env_file(tmp_path)).candle_source_tag == "BINANCE_1H"

    def test_rejects_unknown_provider(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CANDLE_PROVIDER", "kraken")
        with pytest.raises(ValueError, match="CANDLE_PROVIDER"):
            load_config(env_path=_no_env_file(tmp_path))

    def test_rejects_non_integer(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TOP_N", "ten")
        with pytest.raises(ValueError, match="TOP_N"):
            load_config(env_path=_no_env_file(tmp_path))

    def test_rejects_non_positive_timeout(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", "0")
        with pytest.raises(ValueError, match="REQUEST_TIMEOUT_SECONDS"):
            load_config(env_path=_no_env_file(tmp_path))


class TestLoadWatchlist:
    def test_missing_file_uses_default(self, tmp_path):
        coins = load_watchlist(str(tmp_path / "missing.json"))
        assert coins == default_watchlist()
        assert coins[0].symbol == "BTC"

    def test_loads_and_uppercases(self, tmp_path):
        path = tmp_path / "watchlist.json"
        path.write_text(json.dumps([
            {"symbol": "sol", "cg_id": "solana", "name": "Solana"},
            {"symbol": "xyz"},
        ]))
        coins = load_watchlist(str(path))
        assert [c.symbol for c in coins] == ["SOL", "XYZ"]
        assert coins[0].cg_id == "solana"
        assert coins[1].cg_id is None

    def test_rejects_entry_without_symbol(self, tmp_path):
        path = tmp_path / "watchlist.json"
        path.write_text(json.dumps([{"cg_id": "solana"}]))
        with pytest.raises(ValueError, match="symbol"):
            load_watchlist(str(path))

    def test_rejects_non_list(self, tmp_path):
        path = tmp_path / "watchlist.json"
        path.write_text(json.dumps({"symbol": "BTC"}))
        with pytest.raises(ValueError, match="array"):
            load_watchlist(str(path))
