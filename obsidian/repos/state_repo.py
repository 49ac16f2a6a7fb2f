"""State repository — day-keyed commitment and day-state records.

The store is a plain key-value layer; discarding records from another day
is done here at load time.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from obsidian.guard.commitment import CommitmentContract
from obsidian.guard.ledger import DayState
from obsidian.repos.db import get_connection

logger = logging.getLogger("obsidian.guard")

COMMITMENT_KEY = "commit"
DAY_STATE_KEY = "daystate"


class StateStore(Protocol):
    """Minimal key-value interface for persisted records."""

    def get(self, name: str) -> Optional[dict]:
        ...

    def put(self, name: str, record: dict) -> None:
        ...

    def delete(self, name: str) -> None:
        ...


class InMemoryStateStore:
    """Dict-backed store for tests and ephemeral runs."""

    def __init__(self) -> None:
        self._records: dict[str, str] = {}

    def get(self, name: str) -> Optional[dict]:
        raw = self._records.get(name)
        return json.loads(raw) if raw is not None else None

    def put(self, name: str, record: dict) -> None:
        self._records[name] = json.dumps(record)

    def delete(self, name: str) -> None:
        self._records.pop(name, None)


class SqliteStateStore:
    """SQLite-backed store over the ``kv_state`` table.

    Args:
        db_path: Path to an initialised SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get(self, name: str) -> Optional[dict]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT payload FROM kv_state WHERE name = ?", (name,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return json.loads(row["payload"])

    def put(self, name: str, record: dict) -> None:
        updated_at = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO kv_state (name, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE
                SET payload = excluded.payload, updated_at = excluded.updated_at
                """,
                (name, json.dumps(record), updated_at),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, name: str) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute("DELETE FROM kv_state WHERE name = ?", (name,))
            conn.commit()
        finally:
            conn.close()


class StateRepo:
    """Load/save the two persisted guard records for a given day.

    Args:
        store: Any ``StateStore`` implementation.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    # ── Commitment ───────────────────────────────────────────────────────

    def load_commitment(self, day_key: str) -> Optional[CommitmentContract]:
        """Return today's contract, or ``None`` if absent, stale or malformed."""
        raw = self._store.get(COMMITMENT_KEY)
        if not raw:
            return None
        try:
            contract = CommitmentContract.from_dict(raw)
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("Discarding malformed commitment record: %s", exc)
            return None
        if contract.day_key != day_key:
            logger.info(
                "Discarding stale commitment from %s (today is %s)",
                contract.day_key, day_key,
            )
            return None
        return contract

    def save_commitment(self, contract: CommitmentContract) -> None:
        self._store.put(COMMITMENT_KEY, contract.to_dict())

    def clear_commitment(self) -> None:
        self._store.delete(COMMITMENT_KEY)

    # ── Day state ────────────────────────────────────────────────────────

    def load_day_state(self, day_key: str) -> DayState:
        """Return today's day state, or a fresh one if absent, stale or malformed."""
        raw = self._store.get(DAY_STATE_KEY)
        if not raw:
            return DayState(day_key=day_key)
        try:
            state = DayState.from_dict(raw)
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("Discarding malformed day state: %s", exc)
            return DayState(day_key=day_key)
        if state.day_key != day_key:
            return DayState(day_key=day_key)
        return state

    def save_day_state(self, state: DayState) -> None:
        self._store.put(DAY_STATE_KEY, state.to_dict())
