"""Structure engine — support/resistance pivots from 1h candles, pure functions.

Finds 3-candle pivot highs/lows, rounds them into touch-counted zones and
checks that the nearest support gives a stop with at least 2R of room to a
resistance target.
"""

import math

from obsidian.market.models import Candle1h
from obsidian.signals.models import (
    SOURCE_MISSING,
    STRUCTURE_NO_EDGE,
    STRUCTURE_OK,
    STRUCTURE_WAIT,
    PivotLevels,
    PivotZone,
    StructureResult,
)

MIN_ROOM_R = 2.0
MAX_TARGET_DISTANCE_PCT = 0.15
MIN_TOUCHES = 2

UNAVAILABLE_REASON = "Structure unavailable (candle source missing)."
NO_PRICE_REASON = "No price for structure calc."


def zone_price(price: float) -> float:
    """Round *price* to its zone granularity.

    ``>= 1000`` → nearest 10, ``>= 100`` → nearest 1, ``>= 1`` → nearest
    0.01, otherwise nearest 0.000001.  Halves round up.
    """
    if price >= 1000:
        step, digits = 10.0, 0
    elif price >= 100:
        step, digits = 1.0, 0
    elif price >= 1:
        step, digits = 0.01, 2
    else:
        step, digits = 0.000001, 6
    return round(math.floor(price / step + 0.5) * step, digits)


def _count_zones(levels: list[float]) -> list[PivotZone]:
    counts: dict[float, int] = {}
    for level in levels:
        key = zone_price(level)
        counts[key] = counts.get(key, 0) + 1
    return [PivotZone(price=p, touch_count=c) for p, c in counts.items()]


def compute_pivot_levels(candles: list[Candle1h]) -> PivotLevels:
    """Detect pivot highs/lows and group them into zones.

    A candle is a resistance pivot when its high is strictly above both
    neighbours' highs, a support pivot when its low is strictly below both
    neighbours' lows.  The first two and last two candles are never tested.
    """
    supports: list[float] = []
    resistances: list[float] = []

    for i in range(2, len(candles) - 2):
        prev, cur, nxt = candles[i - 1], candles[i], candles[i + 1]
        if cur.high > prev.high and cur.high > nxt.high:
            resistances.append(cur.high)
        if cur.low < prev.low and cur.low < nxt.low:
            supports.append(cur.low)

    return PivotLevels(
        supports=_count_zones(supports),
        resistances=_count_zones(resistances),
    )


def evaluate_structure(
    price: float,
    levels: PivotLevels,
    source: str,
) -> StructureResult:
    """Label the trade structure around *price*.

    Steps (first terminal condition wins):

    1. No support below price → WAIT.
    2. Risk to the nearest support not positive → NO_EDGE.
    3. Target = nearest resistance within 15 % giving ≥ 2R, else the nearest
       one in range; none in range → WAIT.
    4. Room-to-2R below 2 → NO_EDGE (hard block).
    5. Otherwise OK, with a non-blocking warning for levels touched once.
    """
    supports_below = sorted(
        (z for z in levels.supports if z.price < price),
        key=lambda z: z.price,
        reverse=True,
    )
    if not supports_below:
        return StructureResult(
            ok=False,
            label=STRUCTURE_WAIT,
            reasons=["No support below — stop is guesswork."],
            source=source,
        )

    support = supports_below[0]
    risk = price - support.price
    if not risk > 0:
        return StructureResult(
            ok=False,
            label=STRUCTURE_NO_EDGE,
            reasons=["Invalid structure: support not below price."],
            source=source,
            support=support.price,
        )

    max_distance = price * MAX_TARGET_DISTANCE_PCT
    candidates = sorted(
        (z for z in levels.resistances if z.price > price and z.price - price <= max_distance),
        key=lambda z: z.price,
    )
    target = next(
        (z for z in candidates if (z.price - price) / risk >= MIN_ROOM_R),
        candidates[0] if candidates else None,
    )
    if target is None:
        return StructureResult(
            ok=False,
            label=STRUCTURE_WAIT,
            reasons=["No resistance above — target unclear."],
            source=source,
            support=support.price,
        )

    room = (target.price - price) / risk
    if room < MIN_ROOM_R:
        return StructureResult(
            ok=False,
            label=STRUCTURE_NO_EDGE,
            reasons=[f"Room-to-2R fails: only {room:.2f}R available."],
            source=source,
            support=support.price,
            resistance=target.price,
            room_to_2r=room,
        )

    reasons: list[str] = []
    if support.touch_count < MIN_TOUCHES or target.touch_count < MIN_TOUCHES:
        reasons.append("Levels are weak (low touches). Be extra selective.")

    return StructureResult(
        ok=True,
        label=STRUCTURE_OK,
        reasons=reasons,
        source=source,
        support=support.price,
        resistance=target.price,
        room_to_2r=room,
    )


def unavailable_structure(reason: str = UNAVAILABLE_REASON) -> StructureResult:
    """Fallback verdict when candles could not be fetched or used."""
    return StructureResult(
        ok=False,
        label=STRUCTURE_WAIT,
        reasons=[reason],
        source=SOURCE_MISSING,
    )
