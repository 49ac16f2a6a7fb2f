"""Market data models — typed representations of upstream market objects."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class WatchlistCoin:
    """One asset on the watchlist."""

    symbol: str
    cg_id: Optional[str] = None  # CoinGecko id; None = no snapshot source
    name: Optional[str] = None


@dataclass(frozen=True)
class AssetSnapshot:
    """Current market snapshot for one asset.

    ``None`` fields mean "unknown" (the upstream returned nothing usable).
    """

    symbol: str
    cg_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = None
    change_24h_pct: Optional[float] = None
    volume_24h: Optional[float] = None


@dataclass(frozen=True)
class Candle1h:
    """A single 1h bar; only the extremes feed the structure engine."""

    high: float
    low: float
