"""Activity scorer — pure functions over one market snapshot.

Turns 24h change and volume (relative to the watchlist median) into a
0–100 participation score.  Missing change/volume count as 0.
"""

import math
from typing import Iterable

from obsidian.market.models import AssetSnapshot
from obsidian.signals.models import ActivityScore


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def baseline_volume(snapshots: Iterable[AssetSnapshot]) -> float:
    """Median 24h volume across *snapshots*, ignoring zero/missing values.

    With an even count the upper-middle value is used.  Returns ``1.0``
    when no positive volume exists.
    """
    vols = sorted(
        s.volume_24h for s in snapshots
        if s.volume_24h is not None and s.volume_24h > 0
    )
    if not vols:
        return 1.0
    return vols[len(vols) // 2]


def score_asset(snapshot: AssetSnapshot, baseline: float) -> ActivityScore:
    """Score one snapshot against the *baseline* volume.

    Formula::

        vol_factor   = volume / baseline          (1 if baseline <= 0)
        change_score = clamp(50 + change × 4)
        vol_score    = clamp(50 + log10(max(1, vol_factor)) × 25)
        score_15m    = clamp(change_score × 0.55 + vol_score × 0.45 + 4)
        score_1h     = clamp(change_score × 0.65 + vol_score × 0.35)
        combined     = clamp(score_15m × 0.48 + score_1h × 0.52)

    All clamps are to [0, 100].
    """
    change = snapshot.change_24h_pct or 0.0
    volume = snapshot.volume_24h or 0.0
    vol_factor = volume / baseline if baseline > 0 else 1.0

    change_score = _clamp(50 + change * 4, 0, 100)
    vol_score = _clamp(50 + math.log10(max(1.0, vol_factor)) * 25, 0, 100)

    score_15m = _clamp(change_score * 0.55 + vol_score * 0.45 + 4, 0, 100)
    score_1h = _clamp(change_score * 0.65 + vol_score * 0.35, 0, 100)
    combined = _clamp(score_15m * 0.48 + score_1h * 0.52, 0, 100)

    reasons: list[str] = []
    if combined >= 80:
        reasons.append("High participation + strong tape")
    if 65 <= combined < 80:
        reasons.append("Tradable activity")
    if vol_factor >= 1.3:
        reasons.append("Volume elevated vs baseline")
    if change >= 3:
        reasons.append("Positive 24h trend")
    if change < 0:
        reasons.append("24h negative — be selective")

    return ActivityScore(
        combined_score=combined,
        score_15m=score_15m,
        score_1h=score_1h,
        vol_factor=vol_factor,
        reasons=reasons,
    )


def rank_candidates(
    snapshots: list[AssetSnapshot],
    top_n: int = 10,
) -> list[tuple[AssetSnapshot, ActivityScore]]:
    """Score every snapshot and return the *top_n* by combined score.

    Assets without a CoinGecko id have no intraday source and are skipped.
    Ties keep watchlist order.
    """
    baseline = baseline_volume(snapshots)
    scored = [
        (s, score_asset(s, baseline))
        for s in snapshots
        if s.cg_id
    ]
    scored.sort(key=lambda pair: pair[1].combined_score, reverse=True)
    return scored[:top_n]
