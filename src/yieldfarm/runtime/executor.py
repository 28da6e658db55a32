from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from yieldfarm.ledger.state import FarmView
from yieldfarm.runtime.chain_config import FarmConfig, load_chain_config
from yieldfarm.runtime.domain_apply import ApplyError, apply_tx_atomic
from yieldfarm.runtime.genesis import build_genesis_state
from yieldfarm.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from yieldfarm.runtime.state_invariants import check_invariants, ensure_state
from yieldfarm.runtime.structured_log import log_event
from yieldfarm.runtime.tx_admission import admit_tx
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

_log = logging.getLogger("yieldfarm.executor")


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


class FarmExecutor:
    """Single-writer farm node using SQLite for persistence (snapshot + events).

    Every mutation (tx apply, block advance) runs under one re-entrant lock
    and only replaces the in-memory state after the new snapshot is durable.
    """

    def __init__(
        self,
        *,
        db_path: str,
        chain_id: str,
        config: Optional[FarmConfig] = None,
    ) -> None:
        self.chain_id = str(chain_id)
        self.db_path = str(db_path)
        _ensure_parent(self.db_path)

        self._lock = threading.RLock()
        self._db = SqliteDB(path=self.db_path)
        self._store = SqliteLedgerStore(db=self._db)

        booted_from = "snapshot"
        if self._store.exists():
            self.state = self._store.read()
        else:
            cfg = config if config is not None else load_chain_config()
            if cfg.chain_id != self.chain_id:
                raise ExecutorError(
                    f"chain_id mismatch: config={cfg.chain_id!r} executor={self.chain_id!r}. Refuse to start."
                )
            self.state = build_genesis_state(cfg)
            self._store.write(self.state)
            self._store.set_meta("chain_id", self.chain_id)
            booted_from = "genesis"

        ensure_state(self.state)

        # Fail-closed on chain_id mismatch once state is present.
        st_chain_id = str(self.state.get("chain_id") or "").strip()
        meta_chain_id = self._store.get_meta("chain_id")
        for have in (st_chain_id, meta_chain_id):
            if have is not None and have != self.chain_id:
                raise ExecutorError(
                    f"chain_id mismatch: db={have!r} executor={self.chain_id!r}. Refuse to start."
                )

        problems = check_invariants(self.state)
        if problems:
            raise ExecutorError(f"state_invariant_violation: {problems}. Refuse to start.")

        log_event(
            _log,
            "state_boot",
            chain_id=self.chain_id,
            db_path=self.db_path,
            height=int(self.state.get("height", 0)),
            source=booted_from,
        )

    # ----------------------------
    # Public accessors
    # ----------------------------

    @property
    def store(self) -> SqliteLedgerStore:
        return self._store

    def read_state(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    def view(self) -> FarmView:
        with self._lock:
            return FarmView.from_state(self.state)

    @property
    def height(self) -> int:
        with self._lock:
            return int(self.state.get("height", 0))

    @property
    def require_signatures(self) -> bool:
        params = self.state.get("params")
        return bool(params.get("require_signatures", False)) if isinstance(params, dict) else False

    # ----------------------------
    # Tx submission
    # ----------------------------

    def submit_tx(self, env: Json) -> Json:
        """Admit, apply atomically and persist one tx.

        Returns {"ok": True, "result": ..., "events": [...]} on success or
        {"ok": False, "error": code, "reason": ..., "details": ...} on reject.
        """
        with self._lock:
            verdict = admit_tx(env, self.state, chain_id=self.chain_id, require_signatures=self.require_signatures)
            if not verdict.ok:
                self._log_reject(env, verdict.code, verdict.reason, verdict.details)
                return {"ok": False, "error": verdict.code, "reason": verdict.reason, "details": verdict.details}

            tx = TxEnvelope.from_json(env)
            working = copy.deepcopy(self.state)
            working["events"] = []
            try:
                meta = apply_tx_atomic(working, tx)
            except ApplyError as e:
                self._log_reject(env, e.code, e.reason, e.details)
                return {"ok": False, "error": e.code, "reason": e.reason, "details": e.details}

            events: List[Json] = list(working.get("events") or [])
            working["events"] = []
            ids = self._store.commit(working, events, tx_type=tx.tx_type.strip().upper(), signer=tx.signer)
            self.state = working

            for ev, ev_id in zip(events, ids):
                ev["id"] = ev_id

            log_event(
                _log,
                "tx_applied",
                tx_type=tx.tx_type.strip().upper(),
                signer=tx.signer,
                nonce=int(tx.nonce),
                height=int(working.get("height", 0)),
                events=[ev.get("event") for ev in events],
            )
            return {"ok": True, "result": meta, "events": events, "height": int(working.get("height", 0))}

    def _log_reject(self, env: Any, code: str, reason: str, details: Any) -> None:
        tx_type = env.get("tx_type") if isinstance(env, dict) else None
        signer = env.get("signer") if isinstance(env, dict) else None
        log_event(
            _log,
            "tx_rejected",
            tx_type=str(tx_type or ""),
            signer=str(signer or ""),
            code=code,
            reason=reason,
            details=details,
        )

    # ----------------------------
    # Block index
    # ----------------------------

    def advance_blocks(self, n: int = 1) -> int:
        """Move the block index forward by n (n >= 1). Returns the new height."""
        if isinstance(n, bool) or int(n) < 1:
            raise ValueError(f"advance_blocks expects n >= 1; got: {n!r}")
        with self._lock:
            working = copy.deepcopy(self.state)
            previous = int(working.get("height", 0))
            working["height"] = previous + int(n)
            self._store.write(working)
            self.state = working
            log_event(_log, "blocks_advanced", previous=previous, height=int(working["height"]), n=int(n))
            return int(working["height"])

    # ----------------------------
    # Views
    # ----------------------------

    def pending_reward(self, pid: int, account: str) -> int:
        return self.view().pending_reward(pid, account)

    def can_unlock_amount(self, account: str) -> int:
        return self.view().can_unlock_amount(account)

    def events(self, *, since: int = 0, limit: int = 100, event: Optional[str] = None) -> List[Json]:
        return self._store.events(since=since, limit=limit, event=event)

    # ----------------------------
    # Orchestration hooks
    # ----------------------------

    @classmethod
    def from_config(cls, cfg: FarmConfig) -> "FarmExecutor":
        return cls(db_path=cfg.db_path, chain_id=cfg.chain_id, config=cfg)

    @classmethod
    def from_env(cls) -> "FarmExecutor":
        return cls.from_config(load_chain_config())
