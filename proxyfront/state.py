"""Persistent world state with SQLite backend and nested savepoints."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from proxyfront.abi import WORD_SIZE
from proxyfront.errors import StaticWriteError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".proxyfront" / "state.db"
MEMORY_DB = ":memory:"

ZERO_WORD = b"\x00" * WORD_SIZE


@dataclass
class StateStats:
    """World state statistics."""

    account_count: int = 0
    slot_count: int = 0
    code_count: int = 0
    event_count: int = 0


def _slot_key(slot: int) -> str:
    """Render a 256-bit slot number as fixed-width hex (SQLite integers are 64-bit)."""
    if slot < 0 or slot >= 2**256:
        raise ValueError(f"Slot out of range: {slot}")
    return f"{slot:064x}"


class StateStore:
    """Shared persistent region: per-account storage words, code, events, nonces.

    All writes issued inside ``savepoint()`` are rolled back if the block raises.
    Savepoints nest, so an inner frame can fail without discarding the outer
    frame's writes.
    """

    def __init__(self, db_path: Path | str | None = None):
        """Open (or create) the state database.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        if db_path is None:
            db_path = DEFAULT_DB_PATH
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0

        if self.db_path != MEMORY_DB:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: transactions are driven explicitly with SAVEPOINT.
        self._conn = sqlite3.connect(
            self.db_path,
            timeout=10.0,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS storage (
                    account TEXT NOT NULL,
                    slot TEXT NOT NULL,
                    value BLOB NOT NULL,
                    PRIMARY KEY (account, slot)
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS code (
                    address TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    deployed_at INTEGER NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    emitter TEXT NOT NULL,
                    name TEXT NOT NULL,
                    args_json TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_emitter
                ON events (emitter, name)
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS nonces (
                    account TEXT PRIMARY KEY,
                    nonce INTEGER NOT NULL
                )
            """)

    @property
    def depth(self) -> int:
        """Number of savepoints currently open."""
        return self._depth

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Run a block atomically; roll back its writes if it raises."""
        with self._lock:
            self._depth += 1
            name = f"frame_{self._depth}"
            self._conn.execute(f"SAVEPOINT {name}")
            try:
                yield
            except BaseException:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                self._conn.execute(f"RELEASE SAVEPOINT {name}")
                logger.debug(f"Rolled back {name}")
                raise
            else:
                self._conn.execute(f"RELEASE SAVEPOINT {name}")
            finally:
                self._depth -= 1

    # --- Storage words ---

    def load_word(self, account: str, slot: int) -> bytes:
        """Read one 32-byte storage word; unset slots read as zero."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM storage WHERE account = ? AND slot = ?",
                (account, _slot_key(slot)),
            ).fetchone()
        if row is None:
            return ZERO_WORD
        return bytes(row["value"])

    def store_word(self, account: str, slot: int, value: bytes) -> None:
        """Write one 32-byte storage word; writing zero clears the slot."""
        if len(value) != WORD_SIZE:
            raise ValueError(f"Storage words are {WORD_SIZE} bytes, got {len(value)}")

        with self._lock:
            if value == ZERO_WORD:
                self._conn.execute(
                    "DELETE FROM storage WHERE account = ? AND slot = ?",
                    (account, _slot_key(slot)),
                )
            else:
                self._conn.execute(
                    """
                    INSERT INTO storage (account, slot, value)
                    VALUES (?, ?, ?)
                    ON CONFLICT(account, slot) DO UPDATE SET value = excluded.value
                    """,
                    (account, _slot_key(slot), value),
                )

    def slots(self, account: str) -> dict[int, bytes]:
        """Return every non-zero slot of an account."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT slot, value FROM storage WHERE account = ? ORDER BY slot",
                (account,),
            ).fetchall()
        return {int(row["slot"], 16): bytes(row["value"]) for row in rows}

    # --- Code registry ---

    def put_code(self, address: str, kind: str) -> None:
        """Record that code of the given kind lives at an address."""
        now = int(time.time() * 1000000)
        with self._lock:
            self._conn.execute(
                "INSERT INTO code (address, kind, deployed_at) VALUES (?, ?, ?)",
                (address, kind, now),
            )

    def code_kind(self, address: str) -> str | None:
        """Return the code kind deployed at an address, or None."""
        with self._lock:
            row = self._conn.execute(
                "SELECT kind FROM code WHERE address = ?",
                (address,),
            ).fetchone()
        return row["kind"] if row else None

    def code_entries(self) -> list[dict[str, Any]]:
        """List all deployed code, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT address, kind FROM code ORDER BY deployed_at, address"
            ).fetchall()
        return [{"address": row["address"], "kind": row["kind"]} for row in rows]

    # --- Event log ---

    def append_event(self, emitter: str, name: str, args: dict[str, Any]) -> int:
        """Append an event and return its sequence number."""
        now = int(time.time() * 1000000)
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO events (emitter, name, args_json, created_at) VALUES (?, ?, ?, ?)",
                (emitter, name, json.dumps(args), now),
            )
            return int(cursor.lastrowid)

    def last_event_seq(self) -> int:
        """Sequence number of the newest event, or 0 when the log is empty."""
        with self._lock:
            row = self._conn.execute("SELECT COALESCE(MAX(seq), 0) FROM events").fetchone()
        return int(row[0])

    def events(
        self,
        emitter: str | None = None,
        name: str | None = None,
        since: int = 0,
    ) -> list[dict[str, Any]]:
        """Query the event log in emission order.

        Args:
            emitter: Only events emitted by this account
            name: Only events with this name
            since: Only events with a sequence number above this one
        """
        query = "SELECT seq, emitter, name, args_json FROM events"
        clauses = ["seq > ?"]
        params: list[Any] = [since]
        if emitter is not None:
            clauses.append("emitter = ?")
            params.append(emitter)
        if name is not None:
            clauses.append("name = ?")
            params.append(name)
        query += " WHERE " + " AND ".join(clauses) + " ORDER BY seq"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [
            {
                "seq": row["seq"],
                "emitter": row["emitter"],
                "name": row["name"],
                "args": json.loads(row["args_json"]),
            }
            for row in rows
        ]

    # --- Nonces ---

    def next_nonce(self, account: str) -> int:
        """Return the account's current nonce and advance it."""
        with self._lock:
            row = self._conn.execute(
                "SELECT nonce FROM nonces WHERE account = ?",
                (account,),
            ).fetchone()
            nonce = row["nonce"] if row else 0
            self._conn.execute(
                """
                INSERT INTO nonces (account, nonce) VALUES (?, ?)
                ON CONFLICT(account) DO UPDATE SET nonce = excluded.nonce
                """,
                (account, nonce + 1),
            )
        return nonce

    def stats(self) -> StateStats:
        """Get world state statistics."""
        with self._lock:
            storage = self._conn.execute(
                "SELECT COUNT(DISTINCT account) AS accounts, COUNT(*) AS slots FROM storage"
            ).fetchone()
            code_count = self._conn.execute("SELECT COUNT(*) FROM code").fetchone()[0]
            event_count = self._conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

        return StateStats(
            account_count=storage["accounts"],
            slot_count=storage["slots"],
            code_count=code_count,
            event_count=event_count,
        )

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()


class StorageView:
    """One account's slice of the persistent region."""

    def __init__(self, state: StateStore, account: str, readonly: bool = False):
        self.state = state
        self.account = account
        self.readonly = readonly

    def load(self, slot: int) -> bytes:
        return self.state.load_word(self.account, slot)

    def store(self, slot: int, value: bytes) -> None:
        if self.readonly:
            raise StaticWriteError(self.account)
        self.state.store_word(self.account, slot, value)

    def load_int(self, slot: int) -> int:
        return int.from_bytes(self.load(slot), "big")

    def store_int(self, slot: int, value: int) -> None:
        self.store(slot, value.to_bytes(WORD_SIZE, "big"))
