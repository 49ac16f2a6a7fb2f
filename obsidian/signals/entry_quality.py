"""Entry-quality classifier — pure functions over recent hourly prices.

Flags assets that are dumping (NO_EDGE) or have run too far (EXTENDED)
so activity alone never turns into a chase entry.
"""

import math
from typing import Callable, NamedTuple, Sequence

from obsidian.signals.models import (
    ENTRY_EXTENDED,
    ENTRY_NO_EDGE,
    ENTRY_VALID,
    MicroMetrics,
)

FAST_DUMP_PCT = -3.0
PULLBACK_PCT = -4.0
EXTENDED_PCT = 6.0


class _Rule(NamedTuple):
    label: str
    matches: Callable[[dict], bool]
    reasons: Callable[[dict], list[str]]


# Evaluated top to bottom; the first match wins.  NaN never matches.
_RULES: tuple[_Rule, ...] = (
    _Rule(
        ENTRY_NO_EDGE,
        lambda m: m["ret_1h"] <= FAST_DUMP_PCT,
        lambda m: [
            f"Fast dump: {m['ret_1h']:.2f}% in ~1h",
            "Wait for base or reclaim before considering entry.",
        ],
    ),
    _Rule(
        ENTRY_EXTENDED,
        lambda m: m["drop_from_high_6h"] <= PULLBACK_PCT,
        lambda m: [
            f"Pullback: {m['drop_from_high_6h']:.2f}% from 6h high",
            "WAIT for base / reclaim — avoid guessing.",
        ],
    ),
    _Rule(
        ENTRY_EXTENDED,
        lambda m: m["spike_from_low_6h"] >= EXTENDED_PCT,
        lambda m: [
            f"Extended: +{m['spike_from_low_6h']:.2f}% from 6h low",
            "Don't chase. Wait for pullback + retest.",
        ],
    ),
)


def _pct_change(base: float, last: float) -> float:
    """Percent move from *base* to *last*; NaN when *base* is zero or unknown."""
    if base == 0 or math.isnan(base) or math.isnan(last):
        return math.nan
    return (last - base) / base * 100.0


def compute_micro(prices: Sequence[float]) -> MicroMetrics:
    """Compute return/drawdown statistics and classify entry quality.

    *prices* are hourly samples, oldest first.  The 1h reference is
    ``prices[n-2]``, the 4h reference ``prices[n-5]`` and the 6h window the
    last 7 samples; indices clamp to 0 for short series.
    """
    n = len(prices)
    if n == 0:
        metrics = {
            "ret_1h": math.nan,
            "ret_4h": math.nan,
            "drop_from_high_6h": math.nan,
            "spike_from_low_6h": math.nan,
        }
    else:
        last = prices[-1]
        window = prices[max(0, n - 7):]
        metrics = {
            "ret_1h": _pct_change(prices[max(0, n - 2)], last),
            "ret_4h": _pct_change(prices[max(0, n - 5)], last),
            "drop_from_high_6h": _pct_change(max(window), last),
            "spike_from_low_6h": _pct_change(min(window), last),
        }

    label, reasons = ENTRY_VALID, []
    for rule in _RULES:
        if rule.matches(metrics):
            label, reasons = rule.label, rule.reasons(metrics)
            break

    return MicroMetrics(entry_quality=label, reasons=reasons, **metrics)
