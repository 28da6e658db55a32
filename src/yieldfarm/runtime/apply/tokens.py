# src/yieldfarm/runtime/apply/tokens.py
from __future__ import annotations

"""In-state fungible token service.

The farm and the vault only consume this contract (balance_of / transfer /
transfer_from / approve / mint). Internal accounting is intentionally plain:

  state["tokens"][token_id] = {
    "total_supply": int,
    "balances": {account: int},
    "allowances": {owner: {spender: int}},
    "minters": [account, ...],
    "transfer_tax_bps": int,   # burned on every transfer; 0 for standard tokens
  }

A MAX_UINT256 allowance is treated as infinite and never decremented.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Set

from yieldfarm.ledger.constants import BPS_DENOMINATOR, MAX_BPS, MAX_UINT256, ZERO_ACCOUNT
from yieldfarm.runtime.errors import ApplyError
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class TokenApplyError(ApplyError):
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


def _is_zero_account(a: str) -> bool:
    s = _as_str(a)
    return not s or s == ZERO_ACCOUNT


def _ensure_tokens_root(state: Json) -> Json:
    root = state.get("tokens")
    if not isinstance(root, dict):
        root = {}
        state["tokens"] = root
    return root


def ensure_token(
    state: Json,
    token_id: str,
    *,
    minters: Optional[Iterable[str]] = None,
    transfer_tax_bps: int = 0,
) -> Json:
    """Create the token record if missing (genesis / setup only)."""
    tid = _as_str(token_id)
    if not tid:
        raise TokenApplyError("invalid_payload", "missing_token_id", {})
    tax = _as_int(transfer_tax_bps, 0)
    if tax < 0 or tax > MAX_BPS:
        raise TokenApplyError("invalid_payload", "transfer_tax_bps_out_of_range", {"transfer_tax_bps": tax})

    root = _ensure_tokens_root(state)
    tok = root.get(tid)
    if not isinstance(tok, dict):
        tok = {"total_supply": 0, "balances": {}, "allowances": {}, "minters": [], "transfer_tax_bps": tax}
        root[tid] = tok
    tok.setdefault("total_supply", 0)
    tok.setdefault("balances", {})
    tok.setdefault("allowances", {})
    tok.setdefault("minters", [])
    tok.setdefault("transfer_tax_bps", tax)

    for m in minters or []:
        ms = _as_str(m)
        if ms and ms not in tok["minters"]:
            tok["minters"].append(ms)
    return tok


def get_token(state: Json, token_id: str) -> Json:
    tok = _ensure_tokens_root(state).get(_as_str(token_id))
    if not isinstance(tok, dict):
        raise TokenApplyError("not_found", "unknown_token", {"token": token_id})
    return tok


def token_exists(state: Json, token_id: str) -> bool:
    return isinstance(_ensure_tokens_root(state).get(_as_str(token_id)), dict)


def balance_of(state: Json, token_id: str, holder: str) -> int:
    tok = get_token(state, token_id)
    return _as_int(_as_dict(tok.get("balances")).get(_as_str(holder)), 0)


def allowance(state: Json, token_id: str, owner: str, spender: str) -> int:
    tok = get_token(state, token_id)
    per_owner = _as_dict(_as_dict(tok.get("allowances")).get(_as_str(owner)))
    return _as_int(per_owner.get(_as_str(spender)), 0)


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool):
        raise TokenApplyError("invalid_payload", "bad_amount", {"amount": amount})
    amt = _as_int(amount, -1)
    if amt < 0:
        raise TokenApplyError("invalid_payload", "bad_amount", {"amount": amount})
    return amt


def _set_balance(tok: Json, holder: str, value: int) -> None:
    bal = tok.get("balances")
    if not isinstance(bal, dict):
        bal = {}
        tok["balances"] = bal
    bal[holder] = int(value)


def approve(state: Json, token_id: str, owner: str, spender: str, amount: int) -> int:
    o = _as_str(owner)
    s = _as_str(spender)
    if _is_zero_account(o) or _is_zero_account(s):
        raise TokenApplyError("invalid_payload", "approve_zero_account", {"owner": o, "spender": s})
    amt = _require_amount(amount)
    tok = get_token(state, token_id)
    allowances = tok.get("allowances")
    if not isinstance(allowances, dict):
        allowances = {}
        tok["allowances"] = allowances
    per_owner = allowances.get(o)
    if not isinstance(per_owner, dict):
        per_owner = {}
        allowances[o] = per_owner
    per_owner[s] = amt
    return amt


def transfer(state: Json, token_id: str, frm: str, to: str, amount: int) -> int:
    """Move `amount` from frm to to; returns what the recipient received.

    The recipient receives less than `amount` only for taxed tokens.
    """
    f = _as_str(frm)
    t = _as_str(to)
    amt = _require_amount(amount)
    if _is_zero_account(t):
        raise TokenApplyError("invalid_payload", "transfer_to_zero_account", {"token": token_id})
    if amt == 0:
        return 0

    tok = get_token(state, token_id)
    fb = balance_of(state, token_id, f)
    if fb < amt:
        raise TokenApplyError(
            "insufficient_balance",
            "transfer_exceeds_balance",
            {"token": token_id, "holder": f, "balance": fb, "amount": amt},
        )

    tax = (amt * _as_int(tok.get("transfer_tax_bps"), 0)) // BPS_DENOMINATOR
    received = amt - tax

    _set_balance(tok, f, fb - amt)
    _set_balance(tok, t, balance_of(state, token_id, t) + received)
    if tax:
        tok["total_supply"] = _as_int(tok.get("total_supply"), 0) - tax
    return received


def transfer_from(state: Json, token_id: str, spender: str, frm: str, to: str, amount: int) -> int:
    """Allowance-checked transfer initiated by `spender` on behalf of `frm`."""
    s = _as_str(spender)
    f = _as_str(frm)
    amt = _require_amount(amount)

    if s != f:
        have = allowance(state, token_id, f, s)
        if have < amt:
            raise TokenApplyError(
                "insufficient_balance",
                "allowance_exceeded",
                {"token": token_id, "owner": f, "spender": s, "allowance": have, "amount": amt},
            )
        if have != MAX_UINT256:
            approve(state, token_id, f, s, have - amt)

    return transfer(state, token_id, f, to, amt)


def mint(state: Json, token_id: str, minter: str, to: str, amount: int) -> int:
    tok = get_token(state, token_id)
    m = _as_str(minter)
    if m not in set(str(x) for x in tok.get("minters") or []):
        raise TokenApplyError("forbidden", "not_minter", {"token": token_id, "minter": m})
    t = _as_str(to)
    if _is_zero_account(t):
        raise TokenApplyError("invalid_payload", "mint_to_zero_account", {"token": token_id})
    amt = _require_amount(amount)
    if amt == 0:
        return 0
    _set_balance(tok, t, balance_of(state, token_id, t) + amt)
    tok["total_supply"] = _as_int(tok.get("total_supply"), 0) + amt
    return amt


def _apply_token_transfer(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    token_id = _as_str(payload.get("token"))
    to = _as_str(payload.get("to"))
    amount = _require_amount(payload.get("amount"))
    if amount <= 0:
        raise TokenApplyError("invalid_payload", "bad_amount", {"amount": payload.get("amount")})

    received = transfer(state, token_id, env.signer, to, amount)
    return {"applied": "TOKEN_TRANSFER", "token": token_id, "from": env.signer, "to": to, "amount": amount, "received": received}


def _apply_token_approve(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    token_id = _as_str(payload.get("token"))
    spender = _as_str(payload.get("spender"))
    amount = approve(state, token_id, env.signer, spender, payload.get("amount"))
    return {"applied": "TOKEN_APPROVE", "token": token_id, "owner": env.signer, "spender": spender, "amount": amount}


TOKEN_TX_TYPES: Set[str] = {
    "TOKEN_TRANSFER",
    "TOKEN_APPROVE",
}


def apply_tokens(state: Json, env: TxEnvelope) -> Optional[Json]:
    """
    Returns:
      - dict: applied result
      - None: tx_type not in the token domain
    """
    t = _as_str(env.tx_type).upper()
    if t not in TOKEN_TX_TYPES:
        return None

    if t == "TOKEN_TRANSFER":
        return _apply_token_transfer(state, env)

    if t == "TOKEN_APPROVE":
        return _apply_token_approve(state, env)

    return None


__all__ = [
    "TOKEN_TX_TYPES",
    "TokenApplyError",
    "allowance",
    "apply_tokens",
    "approve",
    "balance_of",
    "ensure_token",
    "get_token",
    "mint",
    "token_exists",
    "transfer",
    "transfer_from",
]
