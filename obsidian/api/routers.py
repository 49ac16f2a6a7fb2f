"""Internal API routers — /status, /setups, /trades, /commit, guard control endpoints.

No business logic, no DB access. Delegates to the scanner and session guard.
"""

import logging
import math
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Query

from obsidian.guard.commitment import default_commitment
from obsidian.guard.ledger import InvalidTradeInput, compute_r
from obsidian.guard.session_guard import CommitmentExists, TradeRejected
from obsidian.risk.position_sizer import calculate_position
from obsidian.signals.models import SetupRow

logger = logging.getLogger("obsidian")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_scanner = None  # Set via configure_routers()
_guard = None  # Set via configure_routers()
_account_usd: float = 1000.0

_DEFAULT_RISK_PCT = 2.0


def configure_routers(scanner=None, guard=None, account_usd: Optional[float] = None) -> None:
    """Inject dependencies from the application startup.

    Args:
        scanner: A ``MarketScanner`` instance (or duck-type for tests).
        guard: A ``SessionGuard`` instance.
        account_usd: Account size used by the position calculator.
    """
    global _scanner, _guard, _account_usd  # noqa: PLW0603
    _scanner = scanner
    _guard = guard
    if account_usd is not None:
        _account_usd = account_usd


def _clean(value):
    """Replace non-finite floats with ``None`` so the payload is valid JSON."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clean(v) for v in value]
    return value


def _setup_payload(row: SetupRow) -> dict:
    payload = asdict(row)
    payload["action_allowed"] = (
        _guard.asset_action_allowed(row.entry_quality, row.structure.label)
        if _guard is not None else False
    )
    return _clean(payload)


def _errors(*messages: str) -> dict:
    return {"status": "error", "errors": list(messages)}


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return session, guard and scanner status."""
    return {
        "guard": _guard.status() if _guard is not None else None,
        "scanner": _scanner.status() if _scanner is not None else None,
    }


@router.get("/setups")
async def get_setups(query: str = Query(default="")):
    """Return every scored watchlist row, best first."""
    if _scanner is None:
        return {"setups": []}
    return {"setups": [_setup_payload(r) for r in _scanner.setups(query)]}


@router.get("/setups/best")
async def get_best_setups(query: str = Query(default="")):
    """Return VALID + structure OK rows with strong activity."""
    if _scanner is None:
        return {"setups": []}
    return {"setups": [_setup_payload(r) for r in _scanner.best_setups(query)]}


@router.post("/refresh")
async def post_refresh():
    """Run one refresh cycle now."""
    if _scanner is None:
        return _errors("Scanner not configured")
    return await _scanner.refresh()


# ── Commitment ───────────────────────────────────────────────────────────


@router.get("/commit/draft")
async def get_commit_draft():
    """Return the default commitment draft for today."""
    if _guard is None:
        return _errors("Guard not configured")
    return default_commitment(_guard.day_key).to_dict()


@router.post("/commit")
async def post_commit(body: dict):
    """Commit today's rules from a draft."""
    if _guard is None:
        return _errors("Guard not configured")
    try:
        contract = _guard.commit_today(body)
    except (CommitmentExists, ValueError) as exc:
        return _errors(str(exc))
    return {"status": "ok", "commitment": contract.to_dict()}


@router.post("/recommit")
async def post_recommit():
    """Discard today's commitment."""
    if _guard is None:
        return _errors("Guard not configured")
    _guard.recommit()
    return {"status": "ok"}


# ── Journal ──────────────────────────────────────────────────────────────


@router.get("/trades")
async def get_trades():
    """Return today's trades with the journal summary."""
    if _guard is None:
        return {"trades": [], "summary": None}
    day = _guard.day_state
    return _clean({
        "trades": [t.to_dict() for t in day.trades],
        "summary": _guard.status()["journal"],
    })


@router.get("/trades/preview")
async def preview_trade(
    side: str = Query(default="LONG"),
    entry: float = Query(...),
    stop: float = Query(...),
    exit: float = Query(...),
):
    """Return the R-multiple the inputs would record (``null`` if invalid)."""
    return {"r_multiple": compute_r(side.upper(), entry, stop, exit)}


@router.post("/trades")
async def post_trade(body: dict):
    """Log a closed trade.  Rejected when uncommitted, locked or invalid."""
    if _guard is None:
        return _errors("Guard not configured")

    missing = [k for k in ("symbol", "side", "entry", "stop", "exit") if k not in body]
    if missing:
        return _errors(f"Missing field(s): {', '.join(missing)}")
    try:
        entry, stop, exit_ = (float(body[k]) for k in ("entry", "stop", "exit"))
    except (TypeError, ValueError):
        return _errors("entry, stop and exit must be numbers")
    rules_followed = body.get("rules_followed", True)
    if not isinstance(rules_followed, bool):
        return _errors("rules_followed must be true or false")

    try:
        trade = _guard.log_trade(
            symbol=str(body["symbol"]),
            side=str(body["side"]),
            entry=entry,
            stop=stop,
            exit=exit_,
            rules_followed=rules_followed,
            note=body.get("note"),
        )
    except (TradeRejected, InvalidTradeInput) as exc:
        return _errors(str(exc))
    return {"status": "ok", "trade": trade.to_dict(), "guard": _guard.status()}


# ── Guard control ────────────────────────────────────────────────────────


@router.post("/session/end")
async def post_end_session():
    """Manually lock the day."""
    if _guard is None:
        return _errors("Guard not configured")
    _guard.end_session()
    return {"status": "ok", "guard": _guard.status()}


@router.post("/day/reset")
async def post_reset_day():
    """Clear today's trades and lock."""
    if _guard is None:
        return _errors("Guard not configured")
    _guard.reset_day()
    return {"status": "ok", "guard": _guard.status()}


@router.post("/override")
async def post_override(body: dict):
    """Toggle the manual guard override."""
    if _guard is None:
        return _errors("Guard not configured")
    enabled = body.get("enabled", False)
    if not isinstance(enabled, bool):
        return _errors("enabled must be true or false")
    _guard.set_override(enabled)
    return {"status": "ok", "override": _guard.override_active}


# ── Position calculator ──────────────────────────────────────────────────


@router.get("/position-size")
async def get_position_size(
    entry: Optional[float] = Query(default=None),
    stop: Optional[float] = Query(default=None),
    symbol: Optional[str] = Query(default=None),
    account: Optional[float] = Query(default=None, gt=0),
):
    """Size a trade; entry/stop autofill from *symbol*'s price when omitted."""
    if (entry is None or stop is None) and symbol and _scanner is not None:
        suggestion = _scanner.suggest_levels(symbol)
        if suggestion is not None:
            entry = suggestion[0] if entry is None else entry
            stop = suggestion[1] if stop is None else stop
    if entry is None or stop is None:
        return _errors("entry and stop are required (no price to autofill from)")
    if not all(math.isfinite(v) for v in (entry, stop, account or _account_usd)):
        return _errors("entry, stop and account must be finite numbers")

    commitment = _guard.commitment if _guard is not None else None
    risk_pct = commitment.risk_pct if commitment else _DEFAULT_RISK_PCT
    plan = calculate_position(account or _account_usd, risk_pct, entry, stop)
    return _clean({"entry": entry, "stop": stop, "risk_pct": risk_pct, **asdict(plan)})
