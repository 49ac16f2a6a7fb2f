"""Tests for the market-data client — parsing, retry and failure modes.

HTTP is mocked by monkeypatching ``httpx.AsyncClient.get``.
"""

import httpx
import pytest

from obsidian.config import Config
from obsidian.market.client import MarketDataClient, UpstreamUnavailable
from obsidian.market.models import Candle1h


def _make_config(**overrides) -> Config:
    defaults = dict(
        coingecko_base_url="https://cg.test/api/v3",
        coinbase_base_url="https://cb.test",
        binance_base_url="https://bn.test",
        candle_provider="coinbase",
        candle_limit=240,
        top_n=10,
        refresh_interval_seconds=300,
        request_timeout_seconds=5.0,
        account_usd=1000.0,
        watchlist_path="watchlist.json",
        db_path=":memory:",
        log_level="INFO",
        api_port=8080,
    )
    defaults.update(overrides)
    return Config(**defaults)


def _client(**overrides) -> MarketDataClient:
    return MarketDataClient(_make_config(**overrides), retry_base_delay=0)


def _response(url: str, status: int = 200, json=None, content: bytes | None = None) -> httpx.Response:
    request = httpx.Request("GET", url)
    if content is not None:
        return httpx.Response(status, content=content, request=request)
    return httpx.Response(status, json=json, request=request)


class _Recorder:
    """Replays queued responses and records each call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, dict]] = []

    async def get(self, client_self, url, **kwargs):
        self.calls.append((url, kwargs))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        status, payload = item
        return _response(url, status, json=payload)


def _patch(monkeypatch, recorder: _Recorder) -> None:
    async def _mock_get(self, url, **kwargs):
        return await recorder.get(self, url, **kwargs)

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)


# ── Market snapshot ──────────────────────────────────────────────────────


class TestFetchMarkets:
    @pytest.mark.asyncio
    async def test_parses_rows_and_keeps_nulls(self, monkeypatch):
        rec = _Recorder((200, [
            {
                "id": "solana", "symbol": "sol", "name": "Solana",
                "current_price": 150.5, "price_change_percentage_24h": 3.2,
                "total_volume": 2.5e9,
            },
            {
                "id": "pepe", "symbol": "pepe", "name": "Pepe",
                "current_price": None, "price_change_percentage_24h": None,
                "total_volume": None,
            },
            {"symbol": "noid"},
        ]))
        _patch(monkeypatch, rec)

        snaps = await _client().fetch_markets(["solana", "pepe"])

        assert set(snaps) == {"solana", "pepe"}
        assert snaps["solana"].symbol == "SOL"
        assert snaps["solana"].price == 150.5
        assert snaps["pepe"].price is None
        assert snaps["pepe"].volume_24h is None

        url, kwargs = rec.calls[0]
        assert url == "https://cg.test/api/v3/coins/markets"
        assert kwargs["params"]["ids"] == "solana,pepe"
        assert kwargs["params"]["vs_currency"] == "usd"
        assert kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_non_list_payload_raises(self, monkeypatch):
        _patch(monkeypatch, _Recorder((200, {"error": "rate limited"})))
        with pytest.raises(UpstreamUnavailable):
            await _client().fetch_markets(["solana"])


# ── Hourly prices ────────────────────────────────────────────────────────


class TestFetchHourlyPrices:
    @pytest.mark.asyncio
    async def test_extracts_price_values(self, monkeypatch):
        rec = _Recorder((200, {"prices": [[1, 100.0], [2, 101.5], [3, None], [4, 99.0]]}))
        _patch(monkeypatch, rec)

        prices = await _client().fetch_hourly_prices("solana")

        assert prices == [100.0, 101.5, 99.0]
        url, kwargs = rec.calls[0]
        assert url.endswith("/coins/solana/market_chart")
        assert kwargs["params"]["interval"] == "hourly"

    @pytest.mark.asyncio
    async def test_missing_series_raises(self, monkeypatch):
        _patch(monkeypatch, _Recorder((200, {"market_caps": []})))
        with pytest.raises(UpstreamUnavailable):
            await _client().fetch_hourly_prices("solana")

    @pytest.mark.asyncio
    async def test_empty_series_raises(self, monkeypatch):
        _patch(monkeypatch, _Recorder((200, {"prices": []})))
        with pytest.raises(UpstreamUnavailable, match="Empty"):
            await _client().fetch_hourly_prices("solana")


# ── Candles ──────────────────────────────────────────────────────────────


class TestFetchCandles:
    @pytest.mark.asyncio
    async def test_coinbase_rows_reversed_to_oldest_first(self, monkeypatch):
        # [time, low, high, open, close, volume], newest first
        rec = _Recorder((200, [
            [3000, 9.0, 12.0, 10, 11, 5],
            [2000, 8.0, 11.0, 9, 10, 5],
            [1000, 7.0, 10.0, 8, 9, 5],
        ]))
        _patch(monkeypatch, rec)

        candles = await _client().fetch_1h_candles("sol")

        assert candles == [
            Candle1h(high=10.0, low=7.0),
            Candle1h(high=11.0, low=8.0),
            Candle1h(high=12.0, low=9.0),
        ]
        url, kwargs = rec.calls[0]
        assert url == "https://cb.test/products/SOL-USD/candles"
        assert kwargs["params"]["granularity"] == 3600
        assert kwargs["params"]["limit"] == 240

    @pytest.mark.asyncio
    async def test_coinbase_limit_is_clamped(self, monkeypatch):
        rec = _Recorder((200, [[1, 1.0, 2.0, 1, 1, 1]]))
        _patch(monkeypatch, rec)
        client = _client()

        await client.fetch_1h_candles("SOL", limit=5000)
        await client.fetch_1h_candles("SOL", limit=3)

        assert rec.calls[0][1]["params"]["limit"] == 300
        assert rec.calls[1][1]["params"]["limit"] == 10

    @pytest.mark.asyncio
    async def test_binance_klines(self, monkeypatch):
        rec = _Recorder((200, [
            [1000, "8.5", "10.0", "7.0", "9.0", "100"],
            [2000, "9.0", "11.0", "8.0", "10.0", "100"],
        ]))
        _patch(monkeypatch, rec)

        candles = await _client(candle_provider="binance").fetch_1h_candles("ETH")

        assert candles == [Candle1h(high=10.0, low=7.0), Candle1h(high=11.0, low=8.0)]
        url, kwargs = rec.calls[0]
        assert url == "https://bn.test/api/v3/klines"
        assert kwargs["params"]["symbol"] == "ETHUSDT"
        assert kwargs["params"]["interval"] == "1h"

    @pytest.mark.asyncio
    async def test_no_bars_raises(self, monkeypatch):
        _patch(monkeypatch, _Recorder((200, [])))
        with pytest.raises(UpstreamUnavailable, match="No candle data"):
            await _client().fetch_1h_candles("SOL")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol", ["S", "SOL-USD", "ABCDEFGHIJKLMNOP", "s o l"])
    async def test_invalid_symbol_rejected_without_request(self, monkeypatch, symbol):
        rec = _Recorder((200, []))
        _patch(monkeypatch, rec)
        with pytest.raises(UpstreamUnavailable, match="Invalid symbol"):
            await _client().fetch_1h_candles(symbol)
        assert rec.calls == []


# ── Retry behaviour ──────────────────────────────────────────────────────


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_status_then_succeeds(self, monkeypatch):
        rec = _Recorder((503, None), (429, None), (200, {"prices": [[1, 5.0]]}))
        _patch(monkeypatch, rec)

        prices = await _client().fetch_hourly_prices("solana")

        assert prices == [5.0]
        assert len(rec.calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, monkeypatch):
        rec = _Recorder((502, None))
        _patch(monkeypatch, rec)
        with pytest.raises(UpstreamUnavailable, match="after 3 attempts"):
            await _client().fetch_markets(["solana"])
        assert len(rec.calls) == 3

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, monkeypatch):
        rec = _Recorder(httpx.ConnectError("boom"), (200, []))
        _patch(monkeypatch, rec)
        assert await _client().fetch_markets(["solana"]) == {}
        assert len(rec.calls) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, monkeypatch):
        rec = _Recorder((404, {"error": "not found"}))
        _patch(monkeypatch, rec)
        with pytest.raises(UpstreamUnavailable, match="404"):
            await _client().fetch_hourly_prices("nope")
        assert len(rec.calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_json_raises(self, monkeypatch):
        async def _mock_get(self, url, **kwargs):
            return _response(url, 200, content=b"<html>oops</html>")

        monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)
        with pytest.raises(UpstreamUnavailable, match="malformed JSON"):
            await _client().fetch_markets(["solana"])
