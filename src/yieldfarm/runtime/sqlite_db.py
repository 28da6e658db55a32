# src/yieldfarm/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

Json = Dict[str, Any]

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS ledger_state (
      id INTEGER PRIMARY KEY CHECK (id = 1),
      height INTEGER NOT NULL,
      state_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      height INTEGER NOT NULL,
      tx_type TEXT NOT NULL,
      signer TEXT NOT NULL,
      event TEXT NOT NULL,
      event_json TEXT NOT NULL,
      created_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_event ON events(event);",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Unknown types are not coerced: a non-JSON value leaking into state must
    fail the write rather than persist something unreadable.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class SqliteDB:
    """One SQLite file (WAL) holding the ledger snapshot, the event log and meta.

    Connections are opened per use and never shared across threads. The
    executor is the only writer, so lock contention only comes from outside
    readers; BEGIN IMMEDIATE is retried with jittered backoff until
    WRITE_DEADLINE_S, then the error propagates.
    """

    SCHEMA_VERSION = 1
    BUSY_TIMEOUT_S = 30.0
    WRITE_DEADLINE_S = 30.0
    BACKOFF_S = (0.005, 0.25)

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def synchronous_level() -> str:
        # FULL in prod, NORMAL elsewhere.
        mode = (os.environ.get("YIELDFARM_MODE") or "prod").strip().lower()
        return "FULL" if mode == "prod" else "NORMAL"

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(self.path, timeout=self.BUSY_TIMEOUT_S, isolation_level=None, check_same_thread=False)
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")
        con.execute(f"PRAGMA synchronous={self.synchronous_level()};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            for ddl in _SCHEMA:
                con.execute(ddl)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            elif str(row["value"]) != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"sqlite schema_version mismatch: have={row['value']} want={self.SCHEMA_VERSION}. Refuse to start."
                )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    def _begin_immediate(self, con: sqlite3.Connection) -> None:
        deadline = time.monotonic() + self.WRITE_DEADLINE_S
        base, cap = self.BACKOFF_S
        attempt = 0
        while True:
            try:
                con.execute("BEGIN IMMEDIATE;")
                return
            except sqlite3.OperationalError as e:
                if "locked" not in str(e).lower() or time.monotonic() >= deadline:
                    raise
                time.sleep(min(cap, base * 2 ** min(attempt, 8)) * (0.5 + random.random()))
                attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        with self.connection() as con:
            self._begin_immediate(con)
            try:
                yield con
                con.execute("COMMIT;")
            except Exception:
                con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Farm state snapshot (one row) plus the append-only event log it produced.

    A committed tx writes both in one transaction, so the log never holds
    events of a state that was not persisted.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    @staticmethod
    def _upsert_state(con: sqlite3.Connection, st: Json) -> None:
        con.execute(
            """
            INSERT INTO ledger_state(id, height, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              height=excluded.height,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (int(st.get("height", 0)), _canon_json(st), _now_ms()),
        )

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        with self._db.write_tx() as con:
            self._upsert_state(con, st)

    def commit(self, st: Json, events: Sequence[Json], *, tx_type: str = "", signer: str = "") -> List[int]:
        """Persist the snapshot and append `events`; returns the new event ids."""
        if not isinstance(st, dict):
            raise ValueError("ledger commit expects dict")
        ids: List[int] = []
        now = _now_ms()
        with self._db.write_tx() as con:
            self._upsert_state(con, st)
            for ev in events:
                cur = con.execute(
                    "INSERT INTO events(height, tx_type, signer, event, event_json, created_ts_ms) VALUES(?, ?, ?, ?, ?, ?);",
                    (int(ev.get("height", 0)), str(tx_type), str(signer), str(ev.get("event", "")), _canon_json(ev), now),
                )
                ids.append(int(cur.lastrowid))
        return ids

    def events(self, *, since: int = 0, limit: int = 100, event: Optional[str] = None) -> List[Json]:
        """Events with id > since, oldest first."""
        lim = max(1, min(int(limit), 1000))
        sql = "SELECT id, height, tx_type, signer, event_json FROM events WHERE id > ?"
        args: List[Any] = [int(since)]
        if event:
            sql += " AND event = ?"
            args.append(str(event))
        sql += " ORDER BY id ASC LIMIT ?;"
        args.append(lim)

        out: List[Json] = []
        with self._db.connection() as con:
            for row in con.execute(sql, tuple(args)).fetchall():
                rec = json.loads(str(row["event_json"]))
                rec["id"] = int(row["id"])
                rec["tx_type"] = str(row["tx_type"])
                rec["signer"] = str(row["signer"])
                out.append(rec)
        return out

    def get_meta(self, key: str) -> Optional[str]:
        with self._db.connection() as con:
            row = con.execute("SELECT value FROM meta WHERE key=? LIMIT 1;", (str(key),)).fetchone()
            return None if row is None else str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        with self._db.write_tx() as con:
            con.execute(
                "INSERT INTO meta(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                (str(key), str(value)),
            )
