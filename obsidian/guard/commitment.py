"""Daily commitment contract — the operator's pre-declared risk rules.

Created once per calendar day by an explicit commit.  The contract is
immutable; re-committing discards it.
"""

import math
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime
from typing import Optional

from obsidian.guard.session_clock import (
    SESSION_ASIA,
    SESSION_EUROPE,
    SESSION_OVERLAP,
    SESSION_US,
)


@dataclass(frozen=True)
class CommitmentContract:
    """Rules the session guard enforces for one day."""

    day_key: str  # YYYY-MM-DD, local
    committed_at: str  # ISO timestamp
    max_trades: int = 2
    max_daily_loss_r: float = 2.0
    max_consecutive_losses: int = 2
    risk_pct: float = 2.0
    allow_asia: bool = False
    allow_europe: bool = True
    allow_us: bool = True
    allow_overlap: bool = True
    allow_off_peak: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CommitmentContract":
        """Rebuild from a stored record, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def session_allowed(self, session: str) -> bool:
        """Whether *session* is enabled; unknown sessions count as off-peak."""
        if session == SESSION_ASIA:
            return self.allow_asia
        if session == SESSION_EUROPE:
            return self.allow_europe
        if session == SESSION_US:
            return self.allow_us
        if session == SESSION_OVERLAP:
            return self.allow_overlap
        return self.allow_off_peak


def default_commitment(day_key: str, now: Optional[datetime] = None) -> CommitmentContract:
    """Return the default draft shown before the operator commits."""
    now = now or datetime.now()
    return CommitmentContract(day_key=day_key, committed_at=now.isoformat())


_FLAG_FIELDS = ("allow_asia", "allow_europe", "allow_us", "allow_overlap", "allow_off_peak")
_NUMERIC_FIELDS = ("max_trades", "max_daily_loss_r", "max_consecutive_losses", "risk_pct")


def build_commitment(draft: dict, day_key: str, now: datetime) -> CommitmentContract:
    """Normalise an operator *draft* into today's contract.

    Missing keys take the defaults.  Limits are clamped:

    - ``risk_pct`` to [0.1, 5]
    - ``max_trades`` and ``max_consecutive_losses`` to an integer >= 1
    - ``max_daily_loss_r`` to >= 0.5

    Raises:
        ValueError: If a numeric field is not a finite number or a session
            flag is not a boolean.
    """
    base = default_commitment(day_key, now)
    values: dict = {}

    for name in _NUMERIC_FIELDS:
        if name not in draft:
            continue
        try:
            value = float(draft[name])
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be a number, got {draft[name]!r}") from None
        if not math.isfinite(value):
            raise ValueError(f"{name} must be finite, got {value}")
        values[name] = value

    for name in _FLAG_FIELDS:
        if name not in draft:
            continue
        if not isinstance(draft[name], bool):
            raise ValueError(f"{name} must be true or false, got {draft[name]!r}")
        values[name] = draft[name]

    contract = replace(base, **values)
    return replace(
        contract,
        day_key=day_key,
        committed_at=now.isoformat(),
        risk_pct=min(5.0, max(0.1, float(contract.risk_pct))),
        max_trades=max(1, math.floor(contract.max_trades)),
        max_daily_loss_r=max(0.5, float(contract.max_daily_loss_r)),
        max_consecutive_losses=max(1, math.floor(contract.max_consecutive_losses)),
    )
