"""Trade ledger — R-multiple math and the append-only daily trade record.

Derived metrics (cumulative R, consecutive losses) are always recomputed
from the trade list, never stored alongside it.
"""

import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

SIDE_LONG = "LONG"
SIDE_SHORT = "SHORT"


class InvalidTradeInput(ValueError):
    """Trade inputs do not produce a valid R-multiple."""


@dataclass(frozen=True)
class TradeRecord:
    """One manually logged, closed trade."""

    id: str
    timestamp: str  # ISO
    symbol: str
    side: str  # "LONG" or "SHORT"
    entry: float
    stop: float
    exit: float
    r_multiple: float
    rules_followed: bool
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TradeRecord":
        return cls(
            id=str(data["id"]),
            timestamp=str(data["timestamp"]),
            symbol=str(data["symbol"]),
            side=str(data["side"]),
            entry=float(data["entry"]),
            stop=float(data["stop"]),
            exit=float(data["exit"]),
            r_multiple=float(data["r_multiple"]),
            rules_followed=bool(data["rules_followed"]),
            note=data.get("note"),
        )


@dataclass
class DayState:
    """Trades and lock status for one calendar day."""

    day_key: str
    locked: bool = False
    locked_reason: Optional[str] = None
    trades: list[TradeRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "day_key": self.day_key,
            "locked": self.locked,
            "locked_reason": self.locked_reason,
            "trades": [t.to_dict() for t in self.trades],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DayState":
        return cls(
            day_key=str(data["day_key"]),
            locked=bool(data.get("locked", False)),
            locked_reason=data.get("locked_reason"),
            trades=[TradeRecord.from_dict(t) for t in data.get("trades", [])],
        )


# ── R-multiple ───────────────────────────────────────────────────────────


def compute_r(side: str, entry: float, stop: float, exit: float) -> Optional[float]:
    """Return the R-multiple of a closed trade, or ``None`` if invalid.

    LONG: ``risk = entry - stop``, ``R = (exit - entry) / risk``.
    SHORT: ``risk = stop - entry``, ``R = (entry - exit) / risk``.

    Invalid means a non-finite input, an unknown side, risk <= 0, or an
    R that overflows to a non-finite value.
    """
    values = (entry, stop, exit)
    if not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
        for v in values
    ):
        return None

    if side == SIDE_LONG:
        risk = entry - stop
        move = exit - entry
    elif side == SIDE_SHORT:
        risk = stop - entry
        move = entry - exit
    else:
        return None
    if risk <= 0:
        return None

    r = move / risk
    return r if math.isfinite(r) else None


def build_trade(
    symbol: str,
    side: str,
    entry: float,
    stop: float,
    exit: float,
    rules_followed: bool,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TradeRecord:
    """Create a ``TradeRecord`` after validating its R-multiple.

    Raises:
        InvalidTradeInput: If :func:`compute_r` rejects the inputs.
    """
    side = str(side).upper()
    r = compute_r(side, entry, stop, exit)
    if r is None:
        raise InvalidTradeInput(
            f"Invalid trade inputs (side={side}, entry={entry}, stop={stop}, "
            f"exit={exit}). Check Entry/Stop/Exit and Side."
        )
    note = note.strip() if note else None
    return TradeRecord(
        id=uuid.uuid4().hex,
        timestamp=(now or datetime.now()).isoformat(),
        symbol=symbol.upper(),
        side=side,
        entry=float(entry),
        stop=float(stop),
        exit=float(exit),
        r_multiple=r,
        rules_followed=bool(rules_followed),
        note=note or None,
    )


# ── Derived metrics ──────────────────────────────────────────────────────


def cumulative_r(trades: list[TradeRecord]) -> float:
    """Sum of finite R-multiples."""
    return sum(t.r_multiple for t in trades if math.isfinite(t.r_multiple))


def consecutive_losses(trades: list[TradeRecord]) -> int:
    """Count trailing trades with R < 0; any non-negative trade resets it."""
    count = 0
    for trade in reversed(trades):
        if trade.r_multiple < 0:
            count += 1
        else:
            break
    return count


def summarize(day: DayState) -> dict:
    """Journal summary for *day*."""
    return {
        "day_key": day.day_key,
        "trades_today": len(day.trades),
        "cumulative_r": round(cumulative_r(day.trades), 4),
        "consecutive_losses": consecutive_losses(day.trades),
        "rules_followed": sum(1 for t in day.trades if t.rules_followed),
        "locked": day.locked,
        "locked_reason": day.locked_reason,
    }
