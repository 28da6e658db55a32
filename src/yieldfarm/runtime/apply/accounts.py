# src/yieldfarm/runtime/apply/accounts.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from yieldfarm.runtime.errors import ApplyError
from yieldfarm.runtime.gates import capability_holders, require_not_custody
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

ED25519_PUBKEY_BYTES = 32


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def ensure_account(state: Json, account_id: str) -> Json:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        accts = {}
        state["accounts"] = accts
    acct = accts.get(account_id)
    if not isinstance(acct, dict):
        acct = {"nonce": 0, "keys": []}
        accts[account_id] = acct
    acct.setdefault("nonce", 0)
    if not isinstance(acct.get("keys"), list):
        acct["keys"] = []
    return acct


def has_active_key(state: Json, account_id: str) -> bool:
    acct = (state.get("accounts") or {}).get(account_id)
    if not isinstance(acct, dict) or not isinstance(acct.get("keys"), list):
        return False
    return any(isinstance(k, dict) and k.get("active", True) for k in acct["keys"])


def normalize_pubkey(raw: Any) -> str:
    """Lowercase hex of a raw 32-byte Ed25519 public key, or ApplyError."""
    pk = _as_str(raw).lower()
    if not pk:
        raise ApplyError("invalid_payload", "missing_pubkey", {})
    try:
        n = len(bytes.fromhex(pk))
    except ValueError:
        raise ApplyError("invalid_payload", "bad_pubkey", {"pubkey": pk}) from None
    if n != ED25519_PUBKEY_BYTES:
        raise ApplyError("invalid_payload", "bad_pubkey", {"pubkey": pk, "bytes": n})
    return pk


def bind_key(state: Json, account_id: str, pubkey: str) -> Json:
    acct = ensure_account(state, account_id)
    acct["keys"].append({"pubkey": normalize_pubkey(pubkey), "active": True})
    return acct


def _apply_account_register(state: Json, env: TxEnvelope) -> Json:
    """Bind a first Ed25519 pubkey to the signer. One-shot per account.

    Custody accounts never get a key. Capability holders get theirs at
    genesis, or must register before a capability is handed to them.
    """
    signer = _as_str(env.signer)
    if not signer:
        raise ApplyError("invalid_payload", "missing_signer", {})
    pubkey = normalize_pubkey((env.payload or {}).get("pubkey"))

    require_not_custody(state, signer)
    if has_active_key(state, signer):
        raise ApplyError("conflict", "account_already_registered", {"account": signer})
    if signer in capability_holders(state):
        raise ApplyError("forbidden", "reserved_account", {"account": signer})

    bind_key(state, signer, pubkey)
    return {"applied": "ACCOUNT_REGISTER", "account": signer}


ACCOUNT_TX_TYPES: Set[str] = {"ACCOUNT_REGISTER"}


def apply_accounts(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in ACCOUNT_TX_TYPES:
        return None
    return _apply_account_register(state, env)


__all__ = ["ACCOUNT_TX_TYPES", "apply_accounts", "bind_key", "ensure_account", "has_active_key", "normalize_pubkey"]
