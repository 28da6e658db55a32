from __future__ import annotations

import json
import os
from typing import Any, Dict

from yieldfarm.crypto.sig import verify_tx_sig
from yieldfarm.runtime.gates import custody_accounts
from yieldfarm.runtime.tx_admission_types import TxEnvelope, TxVerdict
from yieldfarm.runtime.tx_schema import known_tx_types

Json = Dict[str, Any]


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)


def _json_size_bytes(obj: Any) -> int:
    """Compute JSON byte size. If not serializable, return -1 (unknown)."""
    try:
        return len(json.dumps(obj, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _account_nonce(state: Json, account_id: str) -> int:
    acct = state.get("accounts", {}).get(account_id)
    if not isinstance(acct, dict):
        return 0
    try:
        return int(acct.get("nonce", 0) or 0)
    except (TypeError, ValueError):
        return 0


def admit_tx(tx: Any, state: Json, *, chain_id: str, require_signatures: bool) -> TxVerdict:
    """Envelope checks that run before apply.

    Payload semantics are left to apply; this only decides whether the
    envelope may be applied at all.
    """
    if not isinstance(tx, dict):
        return TxVerdict.reject("invalid_payload", "envelope_must_be_object", None)

    max_tx_bytes = _env_int("YIELDFARM_MAX_TX_ENVELOPE_BYTES", 16 * 1024)
    env_size = _json_size_bytes(tx)
    if env_size < 0:
        return TxVerdict.reject("invalid_payload", "envelope_not_json", None)
    if env_size > int(max_tx_bytes):
        return TxVerdict.reject(
            "tx_too_large",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(max_tx_bytes)},
        )

    payload = tx.get("payload")
    if payload is not None and not isinstance(payload, dict):
        return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": type(payload).__name__})

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("invalid_payload", "bad_envelope", {"error": str(e)})

    if not env.tx_type.strip():
        return TxVerdict.reject("invalid_payload", "missing_tx_type", None)
    if not env.signer.strip():
        return TxVerdict.reject("invalid_payload", "missing_signer", None)
    if int(env.nonce) < 0:
        return TxVerdict.reject("bad_nonce", "nonce_must_be_nonnegative", {"nonce": int(env.nonce)})

    t = env.tx_type.strip().upper()
    if t not in known_tx_types():
        return TxVerdict.reject("tx_unimplemented", "tx_type_not_implemented", {"tx_type": env.tx_type})

    if env.signer.strip() in custody_accounts(state):
        return TxVerdict.reject("forbidden", "custody_account_cannot_sign", {"signer": env.signer})

    if not require_signatures:
        return TxVerdict.admit()

    expected = _account_nonce(state, env.signer) + 1
    if int(env.nonce) != expected:
        return TxVerdict.reject("bad_nonce", "nonce_mismatch", {"expected": expected, "got": int(env.nonce)})

    ok, info = verify_tx_sig(
        state=state,
        chain_id=chain_id,
        tx_type=env.tx_type.strip(),
        signer=env.signer,
        nonce=int(env.nonce),
        payload=env.payload,
        sig=env.sig,
    )
    if not ok:
        return TxVerdict.reject("bad_signature", str(info.get("reason") or "invalid_signature"), {"signer": env.signer})

    return TxVerdict.admit()


__all__ = ["admit_tx"]
