"""Session clock — pure function, maps local wall-clock time to a trading session.

Windows (local time, start inclusive):

- ASIA            07:00–16:00  SELECTIVE
- EUROPE          16:00–21:00  TRADE
- EUROPE + US     21:00–01:00  TRADE (crosses midnight)
- US              01:00–06:00  TRADE
- OFF-PEAK        06:00–07:00  WAIT
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

STATUS_TRADE = "TRADE"
STATUS_SELECTIVE = "SELECTIVE"
STATUS_WAIT = "WAIT"

SESSION_ASIA = "ASIA"
SESSION_EUROPE = "EUROPE"
SESSION_OVERLAP = "EUROPE + US OVERLAP"
SESSION_US = "US"
SESSION_OFF_PEAK = "OFF-PEAK"


@dataclass(frozen=True)
class SessionInfo:
    """Current session and the time left until it changes."""

    session: str
    status: str  # TRADE / SELECTIVE / WAIT
    note: str
    next_change_at: datetime
    countdown: str


def format_countdown(seconds: float) -> str:
    """Format *seconds* as ``HH:MM:SS``, floored at zero."""
    if seconds <= 0:
        return "00:00:00"
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _at(now: datetime, hour: int, add_days: int = 0) -> datetime:
    base = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    return base + timedelta(days=add_days)


def compute_session(now: datetime) -> SessionInfo:
    """Return the session for the wall-clock time of *now*.

    *now* may be naive (treated as local time) or aware; only its wall-clock
    fields are read and the next boundary keeps its ``tzinfo``.
    """
    minutes = now.hour * 60 + now.minute

    if 420 <= minutes < 960:
        session, status = SESSION_ASIA, STATUS_SELECTIVE
        note = "Decent for some alts/scalps. Be picky (A+ only)."
        next_change = _at(now, 16)
    elif 960 <= minutes < 1260:
        session, status = SESSION_EUROPE, STATUS_TRADE
        note = "Good activity. Trade A+ setups only."
        next_change = _at(now, 21)
    elif minutes >= 1260 or minutes < 60:
        session, status = SESSION_OVERLAP, STATUS_TRADE
        note = "Best liquidity/volatility. Highest quality breakouts often occur here."
        next_change = _at(now, 1, add_days=1 if minutes >= 1260 else 0)
    elif 60 <= minutes < 360:
        session, status = SESSION_US, STATUS_TRADE
        note = "Strong activity. Don't overtrade."
        next_change = _at(now, 6)
    else:
        session, status = SESSION_OFF_PEAK, STATUS_WAIT
        note = "Thin/awkward window. Avoid forcing trades; wait for Asia/Europe."
        next_change = _at(now, 7)

    countdown = format_countdown((next_change - now).total_seconds())
    return SessionInfo(
        session=session,
        status=status,
        note=note,
        next_change_at=next_change,
        countdown=countdown,
    )


def day_key(now: datetime) -> str:
    """Local calendar-day key, ``YYYY-MM-DD``."""
    return now.strftime("%Y-%m-%d")
