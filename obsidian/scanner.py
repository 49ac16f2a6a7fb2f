"""Obsidian — market scanner (refresh pipeline).

One refresh cycle: snapshot → activity scores → top-N → parallel hourly
prices (entry quality) → parallel 1h candles (structure).  Per-asset
failures are isolated; results merge into per-symbol maps, overwriting only
their own keys.
"""

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Optional

from obsidian.config import Config
from obsidian.market.client import MarketDataClient, UpstreamUnavailable
from obsidian.market.models import AssetSnapshot, WatchlistCoin
from obsidian.risk.position_sizer import suggest_levels
from obsidian.signals.activity import baseline_volume, rank_candidates, score_asset
from obsidian.signals.entry_quality import compute_micro
from obsidian.signals.models import (
    ENTRY_VALID,
    SOURCE_MISSING,
    STRUCTURE_OK,
    STRUCTURE_WAIT,
    MicroMetrics,
    SetupRow,
    StructureResult,
)
from obsidian.signals.structure import (
    NO_PRICE_REASON,
    compute_pivot_levels,
    evaluate_structure,
    unavailable_structure,
)

logger = logging.getLogger("obsidian.scanner")

BEST_MIN_COMBINED = 70.0
BEST_MIN_SCORE_1H = 65.0
BEST_MIN_VOL_FACTOR = 1.3
BEST_LIMIT = 8

_NOT_LOADED = StructureResult(
    ok=False,
    label=STRUCTURE_WAIT,
    reasons=["Structure not loaded yet."],
    source=SOURCE_MISSING,
)


class MarketScanner:
    """Runs refresh cycles and holds the latest per-symbol results.

    Args:
        config: Application configuration.
        client: A ``MarketDataClient`` (or compatible duck-type / mock).
        watchlist: Assets to scan, in display order.
    """

    def __init__(
        self,
        config: Config,
        client: MarketDataClient,
        watchlist: list[WatchlistCoin],
    ) -> None:
        self._config = config
        self._client = client
        self._watchlist = watchlist
        self._market: list[AssetSnapshot] = []
        self._micro: dict[str, MicroMetrics] = {}
        self._structure: dict[str, StructureResult] = {}
        self._last_updated: Optional[str] = None
        self._last_error: Optional[str] = None
        self._running: bool = False
        self._cycle_count: int = 0

    # ── Read-only views ──────────────────────────────────────────────────

    @property
    def market(self) -> list[AssetSnapshot]:
        return list(self._market)

    @property
    def micro_map(self) -> dict[str, MicroMetrics]:
        return dict(self._micro)

    @property
    def structure_map(self) -> dict[str, StructureResult]:
        return dict(self._structure)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def status(self) -> dict:
        return {
            "running": self._running,
            "cycle_count": self._cycle_count,
            "last_updated": self._last_updated,
            "last_error": self._last_error,
            "assets": len(self._market),
        }

    # ── Refresh cycle ────────────────────────────────────────────────────

    async def refresh(self) -> dict:
        """Run one refresh cycle.

        Returns a summary dict:

        - ``{"status": "error", "reason": "..."}`` when the snapshot fetch
          fails (previous snapshot and maps are kept)
        - ``{"status": "ok", "ranked": [...], ...}`` otherwise
        """
        cg_ids = [c.cg_id for c in self._watchlist if c.cg_id]
        try:
            rows = await self._client.fetch_markets(cg_ids)
        except UpstreamUnavailable as exc:
            self._last_error = f"Failed to fetch market data: {exc}"
            logger.error(self._last_error)
            return {"status": "error", "reason": self._last_error}

        merged = [self._merge_row(coin, rows.get(coin.cg_id) if coin.cg_id else None)
                  for coin in self._watchlist]
        self._market = merged
        self._last_updated = datetime.now(timezone.utc).isoformat()
        self._last_error = None

        ranked = [snap for snap, _ in rank_candidates(merged, self._config.top_n)]

        micro_ok, micro_failed = await self._refresh_micro(ranked)
        structure_counts = await self._refresh_structure(ranked)

        summary = {
            "status": "ok",
            "ranked": [s.symbol for s in ranked],
            "micro_updated": micro_ok,
            "micro_failed": micro_failed,
            "structure": structure_counts,
            "updated_at": self._last_updated,
        }
        logger.info(
            "Refresh: %d assets, top %d, micro %d ok / %d failed, structure %s",
            len(merged), len(ranked), micro_ok, micro_failed, structure_counts,
        )
        return summary

    @staticmethod
    def _merge_row(coin: WatchlistCoin, row: Optional[AssetSnapshot]) -> AssetSnapshot:
        return AssetSnapshot(
            symbol=coin.symbol.upper(),
            cg_id=coin.cg_id,
            name=coin.name or (row.name if row else None),
            price=row.price if row else None,
            change_24h_pct=row.change_24h_pct if row else None,
            volume_24h=row.volume_24h if row else None,
        )

    async def _refresh_micro(self, ranked: list[AssetSnapshot]) -> tuple[int, int]:
        """Fan out hourly-price fetches; failures keep the previous metrics."""
        results = await asyncio.gather(
            *(self._client.fetch_hourly_prices(s.cg_id) for s in ranked),
            return_exceptions=True,
        )
        updated: dict[str, MicroMetrics] = {}
        failed = 0
        for snap, result in zip(ranked, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.warning("Hourly prices for %s unavailable: %s", snap.symbol, result)
                continue
            updated[snap.symbol] = compute_micro(result)
        self._micro.update(updated)
        return len(updated), failed

    async def _refresh_structure(self, ranked: list[AssetSnapshot]) -> dict[str, int]:
        """Fan out 1h-candle fetches; failures become the unavailable verdict."""
        results = await asyncio.gather(
            *(self._structure_for(s) for s in ranked),
            return_exceptions=True,
        )
        updated: dict[str, StructureResult] = {}
        for snap, result in zip(ranked, results):
            if isinstance(result, BaseException):
                logger.warning("Structure for %s unavailable: %s", snap.symbol, result)
                result = unavailable_structure()
            updated[snap.symbol] = result
        self._structure.update(updated)

        counts: dict[str, int] = {}
        for res in updated.values():
            counts[res.label] = counts.get(res.label, 0) + 1
        return counts

    async def _structure_for(self, snap: AssetSnapshot) -> StructureResult:
        price = snap.price
        if price is None or not math.isfinite(price) or price <= 0:
            return unavailable_structure(NO_PRICE_REASON)
        candles = await self._client.fetch_1h_candles(snap.symbol, self._config.candle_limit)
        levels = compute_pivot_levels(candles)
        return evaluate_structure(price, levels, source=self._config.candle_source_tag)

    # ── Setup views ──────────────────────────────────────────────────────

    def setups(self, query: str = "") -> list[SetupRow]:
        """Scored rows for the (optionally filtered) watchlist, best first."""
        q = query.strip().lower()
        rows = [
            m for m in self._market
            if not q or q in m.symbol.lower() or q in (m.name or "").lower()
        ]
        baseline = baseline_volume(rows)

        setups: list[SetupRow] = []
        for snap in rows:
            micro = self._micro.get(snap.symbol)
            setups.append(
                SetupRow(
                    symbol=snap.symbol,
                    name=snap.name,
                    price=snap.price,
                    change_24h_pct=snap.change_24h_pct,
                    activity=score_asset(snap, baseline),
                    entry_quality=micro.entry_quality if micro else ENTRY_VALID,
                    entry_reasons=list(micro.reasons) if micro else [],
                    structure=self._structure.get(snap.symbol, _NOT_LOADED),
                    micro=micro,
                )
            )
        setups.sort(key=lambda r: r.activity.combined_score, reverse=True)
        return setups

    def best_setups(self, query: str = "") -> list[SetupRow]:
        """VALID + structure OK rows with strong activity, at most eight."""
        best = [
            s for s in self.setups(query)
            if s.entry_quality == ENTRY_VALID
            and s.structure.label == STRUCTURE_OK
            and s.activity.combined_score >= BEST_MIN_COMBINED
            and s.activity.score_1h >= BEST_MIN_SCORE_1H
            and s.activity.vol_factor >= BEST_MIN_VOL_FACTOR
        ]
        return best[:BEST_LIMIT]

    def suggest_levels(self, symbol: str) -> Optional[tuple[float, float]]:
        """Autofill ``(entry, stop)`` from the latest price of *symbol*."""
        snap = next((m for m in self._market if m.symbol == symbol.upper()), None)
        return suggest_levels(snap.price if snap else None)

    # ── Polling loop ─────────────────────────────────────────────────────

    def stop(self) -> None:
        """Signal the loop to stop after the current cycle."""
        self._running = False

    async def run(
        self,
        poll_interval: int | None = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run refresh cycles until stopped.

        Args:
            poll_interval: Seconds between cycles. Defaults to config.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle summary dicts.
        """
        if poll_interval is None:
            poll_interval = self._config.refresh_interval_seconds
        self._running = True
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                result = await self.refresh()
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)
                self._last_error = str(exc)
                result = {"status": "error", "reason": str(exc)}
            results.append(result)

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep — checks _running every second
            for _ in range(poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        return results
