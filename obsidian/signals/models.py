"""Signal data models — typed representations for scorer and engine outputs."""

from dataclasses import dataclass, field
from typing import Optional


# ── Labels ───────────────────────────────────────────────────────────────

ENTRY_VALID = "VALID"
ENTRY_EXTENDED = "EXTENDED"
ENTRY_NO_EDGE = "NO_EDGE"

STRUCTURE_OK = "OK"
STRUCTURE_WAIT = "WAIT"
STRUCTURE_NO_EDGE = "NO_EDGE"

SOURCE_MISSING = "MISSING"


@dataclass(frozen=True)
class ActivityScore:
    """Momentum/participation score for one snapshot row (0–100)."""

    combined_score: float
    score_15m: float
    score_1h: float
    vol_factor: float
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MicroMetrics:
    """Short-horizon return statistics and the entry-quality label."""

    ret_1h: float
    ret_4h: float
    drop_from_high_6h: float
    spike_from_low_6h: float
    entry_quality: str  # VALID / EXTENDED / NO_EDGE
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PivotZone:
    """A rounded support or resistance level."""

    price: float
    touch_count: int


@dataclass(frozen=True)
class PivotLevels:
    """Support and resistance zones derived from one candle history."""

    supports: list[PivotZone]
    resistances: list[PivotZone]


@dataclass(frozen=True)
class StructureResult:
    """Structure verdict for one asset."""

    ok: bool
    label: str  # OK / WAIT / NO_EDGE
    reasons: list[str]
    source: str  # e.g. "COINBASE_1H", or "MISSING" when data was unavailable
    support: Optional[float] = None
    resistance: Optional[float] = None
    room_to_2r: Optional[float] = None


@dataclass(frozen=True)
class SetupRow:
    """Everything the operator sees for one asset in a refresh."""

    symbol: str
    name: Optional[str]
    price: Optional[float]
    change_24h_pct: Optional[float]
    activity: ActivityScore
    entry_quality: str
    entry_reasons: list[str]
    structure: StructureResult
    micro: Optional[MicroMetrics] = None
