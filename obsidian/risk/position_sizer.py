"""Position sizing — pure math, no I/O.

Calculates position size and 1R/2R targets from account size, risk
percentage, and the entry-to-stop distance.
"""

from dataclasses import dataclass

STOP_SUGGESTION_FACTOR = 0.985


@dataclass(frozen=True)
class PositionPlan:
    """Sizing for both directions from one entry/stop pair."""

    risk_amount: float
    long_size: float
    short_size: float
    long_tp1: float
    long_tp2: float
    short_tp1: float
    short_tp2: float


def calculate_position(
    account: float,
    risk_pct: float,
    entry: float,
    stop: float,
) -> PositionPlan:
    """Size a trade for both sides.

    Formula::

        risk_amount    = account × (risk_pct / 100)
        long_distance  = max(0, entry − stop)
        short_distance = max(0, stop − entry)
        size           = risk_amount / distance       (0 when distance is 0)
        TP1 / TP2      = entry ± 1 / 2 × distance     (0 when distance is 0)

    Raises:
        ValueError: If *account* or *risk_pct* is non-positive.
    """
    if account <= 0:
        raise ValueError(f"account must be positive, got {account}")
    if risk_pct <= 0:
        raise ValueError(f"risk_pct must be positive, got {risk_pct}")

    risk_amount = account * (risk_pct / 100.0)
    long_dist = max(0.0, entry - stop)
    short_dist = max(0.0, stop - entry)

    return PositionPlan(
        risk_amount=risk_amount,
        long_size=risk_amount / long_dist if long_dist > 0 else 0.0,
        short_size=risk_amount / short_dist if short_dist > 0 else 0.0,
        long_tp1=entry + long_dist if long_dist > 0 else 0.0,
        long_tp2=entry + long_dist * 2 if long_dist > 0 else 0.0,
        short_tp1=entry - short_dist if short_dist > 0 else 0.0,
        short_tp2=entry - short_dist * 2 if short_dist > 0 else 0.0,
    )


def suggest_levels(price: float | None) -> tuple[float, float] | None:
    """Suggested ``(entry, stop)`` for a fresh long at *price*.

    Returns ``None`` when the price is unknown.
    """
    if price is None or price <= 0:
        return None
    return price, price * STOP_SUGGESTION_FACTOR
