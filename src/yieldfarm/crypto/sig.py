# src/yieldfarm/crypto/sig.py
"""Ed25519 tx signatures.

Keys, seeds and signatures travel as lowercase hex. A signature covers the
canonical JSON of (chain_id, tx_type, signer, nonce, payload), so it cannot
be replayed on another ledger or with another nonce.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]

REGISTER_TX_TYPE = "ACCOUNT_REGISTER"


def _hex(s: Any) -> Optional[bytes]:
    try:
        return bytes.fromhex(str(s).strip())
    except ValueError:
        return None


def canonical_tx_message(*, chain_id: str, tx_type: str, signer: str, nonce: int, payload: Json) -> bytes:
    obj: Json = {
        "chain_id": str(chain_id),
        "tx_type": str(tx_type),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    sig_b, pk_b = _hex(sig), _hex(pubkey)
    if sig_b is None or pk_b is None or len(pk_b) != 32:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(pk_b).verify(sig_b, message)
    except InvalidSignature:
        return False
    return True


def sign_ed25519(*, message: bytes, privkey: str) -> str:
    """Sign with a 32-byte Ed25519 seed given as hex; returns the signature as hex."""
    seed = _hex(privkey)
    if seed is None or len(seed) != 32:
        raise ValueError("ed25519 privkey must be a 32-byte seed in hex")
    return Ed25519PrivateKey.from_private_bytes(seed).sign(message).hex()


def active_account_pubkeys(state: Json, account_id: str) -> List[str]:
    acct = (state.get("accounts") or {}).get(account_id)
    keys = acct.get("keys") if isinstance(acct, dict) else None
    if not isinstance(keys, list):
        return []
    return [
        str(k["pubkey"]).strip().lower()
        for k in keys
        if isinstance(k, dict) and k.get("active", True) and str(k.get("pubkey") or "").strip()
    ]


def _candidate_keys(state: Json, tx_type: str, signer: str, payload: Json) -> List[str]:
    keys = active_account_pubkeys(state, signer)
    # A first registration is checked against the key it binds.
    if not keys and str(tx_type).upper() == REGISTER_TX_TYPE:
        pk = payload.get("pubkey") if isinstance(payload, dict) else None
        if pk:
            keys = [str(pk).strip().lower()]
    return keys


def verify_tx_sig(
    *,
    state: Json,
    chain_id: str,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
    sig: str,
) -> Tuple[bool, Json]:
    """Check sig against the signer's active keys. Returns (ok, info)."""
    keys = _candidate_keys(state, tx_type, signer, payload)
    if not keys:
        return False, {"reason": "no_active_keys"}
    if not sig:
        return False, {"reason": "missing_signature"}

    msg = canonical_tx_message(chain_id=chain_id, tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)
    for pk in keys:
        if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
            return True, {"pubkey": pk}
    return False, {"reason": "invalid_signature"}


__all__ = [
    "active_account_pubkeys",
    "canonical_tx_message",
    "sign_ed25519",
    "verify_ed25519_signature",
    "verify_tx_sig",
]
