"""Public market-data async client.

Handles all communication with the upstream providers: the CoinGecko market
snapshot and hourly price chart, and 1h candles from Coinbase or Binance.
Every failure surfaces as ``UpstreamUnavailable``.
"""

import asyncio
import logging
import math
import re
from typing import Optional

import httpx

from obsidian.config import Config
from obsidian.market.models import AssetSnapshot, Candle1h

logger = logging.getLogger("obsidian.market")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}

_SYMBOL_RE = re.compile(r"^[A-Z0-9]{2,15}$")
_COINBASE_MIN_BARS = 10
_COINBASE_MAX_BARS = 300
_BINANCE_MAX_BARS = 1000

_HEADERS = {
    "User-Agent": "obsidian-terminal/1.0",
    "Accept": "application/json",
}


class UpstreamUnavailable(Exception):
    """An upstream fetch failed or returned unusable data."""


def _finite(value) -> Optional[float]:
    """Return *value* as a float, or ``None`` if it is missing or non-finite."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


class MarketDataClient:
    """Async client wrapping the public market-data endpoints.

    Args:
        config: Application configuration (base URLs, provider, timeout).
        retry_base_delay: Backoff base in seconds; tests pass ``0``.
    """

    def __init__(self, config: Config, retry_base_delay: float = _RETRY_BASE_DELAY) -> None:
        self._config = config
        self._timeout = config.request_timeout_seconds
        self._retry_base_delay = retry_base_delay

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _get_json(self, url: str, params: Optional[dict] = None):
        """GET *url* with exponential-backoff retry and decode the JSON body.

        Retries on transient server errors (502, 503, 504), rate-limits (429)
        and transport errors.  Everything else raises immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            delay = self._retry_base_delay * (2 ** attempt)
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(
                        url,
                        headers=_HEADERS,
                        params=params,
                        timeout=self._timeout,
                    )
            except httpx.TransportError as exc:
                logger.warning(
                    "GET %s transport error (%s) — retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)
                continue

            if resp.status_code in _RETRYABLE_STATUS_CODES:
                logger.warning(
                    "GET %s returned %d — retry %d/%d in %.1fs",
                    url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = UpstreamUnavailable(f"{url} returned {resp.status_code}")
                await asyncio.sleep(delay)
                continue

            if resp.status_code >= 400:
                raise UpstreamUnavailable(f"{url} returned {resp.status_code}")
            try:
                return resp.json()
            except ValueError as exc:
                raise UpstreamUnavailable(f"{url} returned malformed JSON") from exc

        raise UpstreamUnavailable(f"{url} failed after {_MAX_RETRIES} attempts: {last_exc}")

    # ── Market snapshot ──────────────────────────────────────────────────

    async def fetch_markets(self, cg_ids: list[str]) -> dict[str, AssetSnapshot]:
        """Fetch the current snapshot for every CoinGecko id in *cg_ids*.

        Returns:
            ``{cg_id: AssetSnapshot}``; ids the provider did not return are
            absent.  Null price/change/volume stay ``None``.
        """
        url = f"{self._config.coingecko_base_url}/coins/markets"
        params = {
            "vs_currency": "usd",
            "ids": ",".join(cg_ids),
            "order": "market_cap_desc",
            "per_page": "250",
            "page": "1",
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        rows = await self._get_json(url, params=params)
        if not isinstance(rows, list):
            raise UpstreamUnavailable("Market snapshot is not a list")

        snapshots: dict[str, AssetSnapshot] = {}
        for row in rows:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            snapshots[row["id"]] = AssetSnapshot(
                symbol=str(row.get("symbol", "")).upper(),
                cg_id=row["id"],
                name=row.get("name"),
                price=_finite(row.get("current_price")),
                change_24h_pct=_finite(row.get("price_change_percentage_24h")),
                volume_24h=_finite(row.get("total_volume")),
            )
        return snapshots

    # ── Short-interval prices ────────────────────────────────────────────

    async def fetch_hourly_prices(self, cg_id: str) -> list[float]:
        """Fetch ~24h of hourly prices for *cg_id*, oldest first.

        Only the price values are kept; non-finite points are dropped.
        """
        url = f"{self._config.coingecko_base_url}/coins/{cg_id}/market_chart"
        params = {"vs_currency": "usd", "days": "1", "interval": "hourly"}
        data = await self._get_json(url, params=params)

        points = data.get("prices") if isinstance(data, dict) else None
        if not isinstance(points, list):
            raise UpstreamUnavailable(f"No price series for {cg_id}")

        prices: list[float] = []
        for point in points:
            if isinstance(point, (list, tuple)) and len(point) >= 2:
                price = _finite(point[1])
                if price is not None:
                    prices.append(price)
        if not prices:
            raise UpstreamUnavailable(f"Empty price series for {cg_id}")
        return prices

    # ── 1h candles ───────────────────────────────────────────────────────

    async def fetch_1h_candles(self, symbol: str, limit: Optional[int] = None) -> list[Candle1h]:
        """Fetch 1h candles for *symbol* from the configured provider.

        Returns:
            List of ``Candle1h`` ordered oldest-first.

        Raises:
            UpstreamUnavailable: invalid symbol, failed request, or no bars.
        """
        symbol = symbol.strip().upper()
        if not _SYMBOL_RE.match(symbol):
            raise UpstreamUnavailable(f"Invalid symbol {symbol!r}")
        if limit is None:
            limit = self._config.candle_limit

        if self._config.candle_provider == "binance":
            candles = await self._fetch_binance_klines(symbol, limit)
        else:
            candles = await self._fetch_coinbase_candles(symbol, limit)

        if not candles:
            raise UpstreamUnavailable(f"No candle data returned for {symbol}")
        return candles

    async def _fetch_coinbase_candles(self, symbol: str, limit: int) -> list[Candle1h]:
        """Coinbase rows are ``[time, low, high, open, close, volume]``, newest first."""
        limit = max(_COINBASE_MIN_BARS, min(limit, _COINBASE_MAX_BARS))
        url = f"{self._config.coinbase_base_url}/products/{symbol}-USD/candles"
        rows = await self._get_json(url, params={"granularity": 3600, "limit": limit})
        if not isinstance(rows, list):
            raise UpstreamUnavailable(f"Malformed Coinbase candles for {symbol}")

        candles: list[Candle1h] = []
        for row in rows:
            if not isinstance(row, (list, tuple)) or len(row) < 3:
                continue
            low, high = _finite(row[1]), _finite(row[2])
            if low is not None and high is not None:
                candles.append(Candle1h(high=high, low=low))
        candles.reverse()
        return candles

    async def _fetch_binance_klines(self, symbol: str, limit: int) -> list[Candle1h]:
        """Binance rows are ``[openTime, open, high, low, close, ...]``, oldest first."""
        limit = max(1, min(limit, _BINANCE_MAX_BARS))
        url = f"{self._config.binance_base_url}/api/v3/klines"
        params = {"symbol": f"{symbol}USDT", "interval": "1h", "limit": limit}
        rows = await self._get_json(url, params=params)
        if not isinstance(rows, list):
            raise UpstreamUnavailable(f"Malformed Binance klines for {symbol}")

        candles: list[Candle1h] = []
        for row in rows:
            if not isinstance(row, (list, tuple)) or len(row) < 4:
                continue
            try:
                high, low = float(row[2]), float(row[3])
            except (TypeError, ValueError):
                continue
            if math.isfinite(high) and math.isfinite(low):
                candles.append(Candle1h(high=high, low=low))
        return candles
