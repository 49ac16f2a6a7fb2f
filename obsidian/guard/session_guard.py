"""Session guard — daily state machine gating what the operator may act on.

States per day::

    UNCOMMITTED ──commit──▶ ACTIVE ──limit hit / end session──▶ LOCKED
         ▲                    ▲                                   │
         └──── rollover ──────┴────────── reset day ──────────────┘

The lock is re-derived from the trade list on every evaluation; only
``reset_day`` (or a new calendar day) clears it.  The manual override relaxes
session and per-asset blocks but never UNCOMMITTED or LOCKED.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from obsidian.guard.commitment import CommitmentContract, build_commitment
from obsidian.guard.ledger import (
    DayState,
    TradeRecord,
    build_trade,
    consecutive_losses,
    cumulative_r,
    summarize,
)
from obsidian.guard.session_clock import (
    STATUS_SELECTIVE,
    STATUS_WAIT,
    SessionInfo,
    compute_session,
    day_key,
)
from obsidian.repos.state_repo import StateRepo
from obsidian.signals.models import ENTRY_NO_EDGE, STRUCTURE_OK

logger = logging.getLogger("obsidian.guard")

STATE_UNCOMMITTED = "UNCOMMITTED"
STATE_ACTIVE = "ACTIVE"
STATE_LOCKED = "LOCKED"

TONE_BLOCK = "block"
TONE_CAUTION = "caution"
TONE_GO = "go"

MANUAL_END_REASON = "Manual END SESSION — you chose capital protection."


class TradeRejected(RuntimeError):
    """A trade was logged while the day is uncommitted or locked."""


class CommitmentExists(RuntimeError):
    """Today's contract is already committed; re-commit first."""


@dataclass(frozen=True)
class GuardDecision:
    """Global trading verdict with the operator-facing message."""

    allowed: bool
    tone: str  # block / caution / go
    message: str
    session: SessionInfo


def _fmt_r(r: float) -> str:
    return f"{r:+.2f}R"


class SessionGuard:
    """Combines session clock, commitment and ledger into allow/deny decisions.

    Args:
        repo: ``StateRepo`` used to load and persist the day's records.
        clock: Returns the current local time; defaults to ``datetime.now``.
    """

    def __init__(
        self,
        repo: StateRepo,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repo = repo
        self._clock = clock or datetime.now
        self._day_key = day_key(self._clock())
        self._commitment: Optional[CommitmentContract] = repo.load_commitment(self._day_key)
        self._day: DayState = repo.load_day_state(self._day_key)
        self._override: bool = False
        self._enforce_limits()

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def day_key(self) -> str:
        return self._day_key

    @property
    def commitment(self) -> Optional[CommitmentContract]:
        return self._commitment

    @property
    def day_state(self) -> DayState:
        return self._day

    @property
    def override_active(self) -> bool:
        return self._override

    def state(self, now: Optional[datetime] = None) -> str:
        """Current state after syncing to *now*."""
        self.sync(now)
        if self._commitment is None:
            return STATE_UNCOMMITTED
        if self._day.locked:
            return STATE_LOCKED
        return STATE_ACTIVE

    def decision(self, now: Optional[datetime] = None) -> GuardDecision:
        """Evaluate the global trading-allowed predicate live."""
        now = now or self._clock()
        state = self.state(now)
        session = compute_session(now)

        if state == STATE_UNCOMMITTED:
            return GuardDecision(False, TONE_BLOCK, "Commit today's rules before you trade.", session)
        if state == STATE_LOCKED:
            return GuardDecision(
                False, TONE_BLOCK,
                self._day.locked_reason or "Session locked — stop trading.",
                session,
            )
        if session.status == STATUS_WAIT and not self._override:
            return GuardDecision(
                False, TONE_BLOCK,
                "WAIT window — protect capital. Don't force entries.",
                session,
            )
        if not self._commitment.session_allowed(session.session) and not self._override:
            return GuardDecision(
                False, TONE_BLOCK,
                "This session isn't in your plan. Wait for your allowed window.",
                session,
            )
        if session.status == STATUS_SELECTIVE:
            return GuardDecision(
                True, TONE_CAUTION,
                "Selective window — A+ only. One clean setup beats five weak ones.",
                session,
            )
        return GuardDecision(
            True, TONE_GO,
            "Trade window — execute your rules, not your emotions.",
            session,
        )

    def trading_allowed(self, now: Optional[datetime] = None) -> bool:
        return self.decision(now).allowed

    def asset_action_allowed(
        self,
        entry_quality: str,
        structure_label: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether the operator may act on one asset.

        Requires global trading to be allowed; without override the asset
        must not be NO_EDGE on entry quality and its structure must be OK.
        """
        if not self.trading_allowed(now):
            return False
        if self._override:
            return True
        if entry_quality == ENTRY_NO_EDGE:
            return False
        return structure_label == STRUCTURE_OK

    # ── Transitions ──────────────────────────────────────────────────────

    def sync(self, now: Optional[datetime] = None) -> None:
        """Roll over on a new calendar day, then re-derive the lock."""
        today = day_key(now or self._clock())
        if today != self._day_key:
            logger.info("Day rollover %s → %s", self._day_key, today)
            self._day_key = today
            self._commitment = self._repo.load_commitment(today)
            self._day = self._repo.load_day_state(today)
            self._override = False
            self._repo.save_day_state(self._day)
        self._enforce_limits()

    def commit_today(self, draft: dict, now: Optional[datetime] = None) -> CommitmentContract:
        """Save today's contract from an operator draft (UNCOMMITTED → ACTIVE).

        Raises:
            CommitmentExists: If today is already committed.
            ValueError: If the draft holds non-numeric limits.
        """
        now = now or self._clock()
        self.sync(now)
        if self._commitment is not None:
            raise CommitmentExists("Today is already committed. Re-commit to change it.")

        contract = build_commitment(draft, self._day_key, now)
        self._repo.save_commitment(contract)
        self._commitment = contract
        logger.info(
            "Committed %s: max_trades=%d max_loss=%.2fR max_consec=%d risk=%.2f%%",
            contract.day_key, contract.max_trades, contract.max_daily_loss_r,
            contract.max_consecutive_losses, contract.risk_pct,
        )
        self._enforce_limits()
        return contract

    def recommit(self, now: Optional[datetime] = None) -> None:
        """Discard today's contract and return to UNCOMMITTED."""
        self.sync(now)
        self._commitment = None
        self._repo.clear_commitment()
        logger.info("Commitment for %s discarded.", self._day_key)

    def log_trade(
        self,
        symbol: str,
        side: str,
        entry: float,
        stop: float,
        exit: float,
        rules_followed: bool = True,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TradeRecord:
        """Append a closed trade to today's ledger, then re-check the limits.

        Raises:
            TradeRejected: If the day is uncommitted or locked.
            InvalidTradeInput: If the R-multiple is invalid.
        """
        now = now or self._clock()
        state = self.state(now)
        if state == STATE_UNCOMMITTED:
            raise TradeRejected("Commit today's rules before logging trades.")
        if state == STATE_LOCKED:
            raise TradeRejected(self._day.locked_reason or "Session locked.")

        trade = build_trade(symbol, side, entry, stop, exit, rules_followed, note, now)
        self._day.trades.append(trade)
        self._repo.save_day_state(self._day)
        logger.info(
            "Logged %s %s: %s (rules followed: %s)",
            trade.side, trade.symbol, _fmt_r(trade.r_multiple), trade.rules_followed,
        )
        self._enforce_limits()
        return trade

    def end_session(self, now: Optional[datetime] = None) -> None:
        """Manually lock the day."""
        self.sync(now)
        if self._day.locked:
            return
        self._lock(MANUAL_END_REASON)

    def reset_day(self, now: Optional[datetime] = None) -> None:
        """Clear today's trades and lock."""
        self.sync(now)
        self._day = DayState(day_key=self._day_key)
        self._repo.save_day_state(self._day)
        logger.info("Day %s reset.", self._day_key)

    def set_override(self, enabled: bool) -> None:
        self._override = bool(enabled)
        logger.warning("Guard override %s.", "ENABLED" if self._override else "disabled")

    # ── Internals ────────────────────────────────────────────────────────

    def _enforce_limits(self) -> None:
        """Lock the day when any commitment limit is reached."""
        contract = self._commitment
        if contract is None or self._day.locked:
            return

        trades = self._day.trades
        total_r = cumulative_r(trades)
        losses = consecutive_losses(trades)
        loss_cap = abs(contract.max_daily_loss_r)

        if len(trades) >= contract.max_trades:
            self._lock(f"Max trades reached ({contract.max_trades}). Session complete.")
        elif total_r <= -loss_cap:
            self._lock(
                f"Daily loss limit hit ({_fmt_r(total_r)} ≤ -{loss_cap:g}R). Stop trading."
            )
        elif losses >= contract.max_consecutive_losses:
            self._lock(f"Consecutive losses hit ({losses}). Stop trading.")

    def _lock(self, reason: str) -> None:
        self._day.locked = True
        self._day.locked_reason = reason
        self._repo.save_day_state(self._day)
        logger.warning("Day %s locked: %s", self._day_key, reason)

    def status(self, now: Optional[datetime] = None) -> dict:
        """Snapshot of guard + session state for the API and console."""
        now = now or self._clock()
        decision = self.decision(now)
        session = decision.session
        return {
            "day_key": self._day_key,
            "state": self.state(now),
            "trading_allowed": decision.allowed,
            "tone": decision.tone,
            "message": decision.message,
            "override": self._override,
            "session": {
                "name": session.session,
                "status": session.status,
                "note": session.note,
                "next_change_at": session.next_change_at.isoformat(),
                "countdown": session.countdown,
            },
            "commitment": self._commitment.to_dict() if self._commitment else None,
            "journal": summarize(self._day),
        }
