# src/yieldfarm/runtime/apply/vault.py
from __future__ import annotations

"""Vesting Lock Vault.

Holds reward tokens on behalf of beneficiaries and releases them linearly over
a fixed block window [start_release_block, end_release_block).

  state["vault"] = {
    "address": str,                 # custody account of the vault
    "token": str,                   # locked token id
    "start_release_block": int,
    "end_release_block": int,
    "total_locked": int,            # outstanding (locked - released) across accounts
    "locks": {account: {"total_locked": int, "total_released": int}},
  }

The vault never reads farm state; the farm reaches it only through lock().
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from yieldfarm.ledger.constants import ZERO_ACCOUNT
from yieldfarm.ledger.rewards import vested_amount
from yieldfarm.runtime.apply.tokens import balance_of, transfer, transfer_from
from yieldfarm.runtime.errors import ApplyError
from yieldfarm.runtime.state_invariants import block_height, emit_event
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class VaultApplyError(ApplyError):
    code: str
    reason: str
    details: Optional[Json] = None


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def init_vault(
    state: Json,
    *,
    address: str,
    token: str,
    start_release_block: int,
    end_release_block: int,
) -> Json:
    """Create the vault aggregate. The release window is fixed from here on."""
    start = _as_int(start_release_block, -1)
    end = _as_int(end_release_block, -1)
    if start < 0 or end <= start:
        raise VaultApplyError(
            "invalid_payload",
            "vesting_window_invalid",
            {"start_release_block": start_release_block, "end_release_block": end_release_block},
        )
    addr = _as_str(address)
    if not addr or addr == ZERO_ACCOUNT:
        raise VaultApplyError("invalid_payload", "zero_vault_address", {})

    vault = {
        "address": addr,
        "token": _as_str(token),
        "start_release_block": start,
        "end_release_block": end,
        "total_locked": 0,
        "locks": {},
    }
    state["vault"] = vault
    return vault


def _vault(state: Json) -> Json:
    v = state.get("vault")
    if not isinstance(v, dict):
        raise VaultApplyError("invalid_state", "vault_not_initialized", {})
    if not isinstance(v.get("locks"), dict):
        v["locks"] = {}
    return v


def get_lock(state: Json, account: str) -> Json:
    """Get-or-default read: a zero record for accounts that never locked."""
    rec = _as_dict(_vault(state)["locks"].get(_as_str(account)))
    return {
        "total_locked": _as_int(rec.get("total_locked"), 0),
        "total_released": _as_int(rec.get("total_released"), 0),
    }


def _ensure_lock(vault: Json, account: str) -> Json:
    locks = vault["locks"]
    rec = locks.get(account)
    if not isinstance(rec, dict):
        rec = {"total_locked": 0, "total_released": 0}
        locks[account] = rec
    return rec


def can_unlock_amount(state: Json, account: str) -> int:
    vault = _vault(state)
    rec = get_lock(state, account)
    return vested_amount(
        rec["total_locked"],
        rec["total_released"],
        now_block=block_height(state),
        start_block=_as_int(vault.get("start_release_block"), 0),
        end_block=_as_int(vault.get("end_release_block"), 0),
    )


def lock(state: Json, *, caller: str, beneficiary: str, amount: int) -> int:
    """Pull `amount` from caller and credit what actually arrived to beneficiary.

    Returns the received amount. Crediting the measured balance delta keeps the
    books equal to custody even for tokens that skim on transfer.
    """
    b = _as_str(beneficiary)
    if not b or b == ZERO_ACCOUNT:
        raise VaultApplyError("invalid_payload", "zero_beneficiary", {"beneficiary": beneficiary})
    if isinstance(amount, bool):
        raise VaultApplyError("invalid_payload", "bad_amount", {"amount": amount})
    requested = _as_int(amount, 0)
    if requested <= 0:
        raise VaultApplyError("invalid_payload", "zero_amount", {"amount": amount})

    vault = _vault(state)
    token = _as_str(vault.get("token"))
    address = _as_str(vault.get("address"))

    before = balance_of(state, token, address)
    transfer_from(state, token, address, _as_str(caller), address, requested)
    received = balance_of(state, token, address) - before

    rec = _ensure_lock(vault, b)
    rec["total_locked"] = _as_int(rec.get("total_locked"), 0) + received
    vault["total_locked"] = _as_int(vault.get("total_locked"), 0) + received

    emit_event(state, "Locked", beneficiary=b, requested_amount=requested, received_amount=received)
    return received


def unlock(state: Json, account: str) -> int:
    """Release everything vested so far to `account` (the caller)."""
    vault = _vault(state)
    acct = _as_str(account)
    now = block_height(state)
    start = _as_int(vault.get("start_release_block"), 0)
    if now < start:
        raise VaultApplyError(
            "precondition_failed",
            "vesting_not_started",
            {"height": now, "start_release_block": start},
        )

    rec = get_lock(state, acct)
    if rec["total_locked"] <= rec["total_released"]:
        raise VaultApplyError("precondition_failed", "nothing_to_unlock", {"account": acct})

    amount = can_unlock_amount(state, acct)

    stored = _ensure_lock(vault, acct)
    stored["total_released"] = _as_int(stored.get("total_released"), 0) + amount
    vault["total_locked"] = _as_int(vault.get("total_locked"), 0) - amount

    transfer(state, _as_str(vault.get("token")), _as_str(vault.get("address")), acct, amount)

    emit_event(state, "Unlocked", account=acct, amount=amount)
    return amount


def _apply_vault_lock(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    beneficiary = _as_str(payload.get("beneficiary"))
    requested = payload.get("amount")
    received = lock(state, caller=env.signer, beneficiary=beneficiary, amount=requested)
    return {
        "applied": "VAULT_LOCK",
        "beneficiary": beneficiary,
        "requested": _as_int(requested, 0),
        "received": received,
    }


def _apply_vault_unlock(state: Json, env: TxEnvelope) -> Json:
    amount = unlock(state, env.signer)
    return {"applied": "VAULT_UNLOCK", "account": env.signer, "amount": amount}


VAULT_TX_TYPES: Set[str] = {
    "VAULT_LOCK",
    "VAULT_UNLOCK",
}


def apply_vault(state: Json, env: TxEnvelope) -> Optional[Json]:
    """
    Returns:
      - dict: applied result
      - None: tx_type not in the vault domain
    """
    t = _as_str(env.tx_type).upper()
    if t not in VAULT_TX_TYPES:
        return None

    if t == "VAULT_LOCK":
        return _apply_vault_lock(state, env)

    if t == "VAULT_UNLOCK":
        return _apply_vault_unlock(state, env)

    return None


__all__ = [
    "VAULT_TX_TYPES",
    "VaultApplyError",
    "apply_vault",
    "can_unlock_amount",
    "get_lock",
    "init_vault",
    "lock",
    "unlock",
]
