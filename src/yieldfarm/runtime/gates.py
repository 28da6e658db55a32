# src/yieldfarm/runtime/gates.py
from __future__ import annotations

"""Capability gates.

Gated operations name the capability they need; this module resolves who
currently holds it. OWNER is administered by the owner, while DEV and
FEE_ADMIN are self-administered (only the current holder may hand them on).

Custody accounts (the farm and the vault) hold user funds and never sign;
only the ledger moves their balances.
"""

from typing import Any, Dict, Optional, Set

from yieldfarm.runtime.errors import ApplyError

Json = Dict[str, Any]

CAP_OWNER = "OWNER"
CAP_DEV = "DEV"
CAP_FEE_ADMIN = "FEE_ADMIN"

# capability -> (farm field holding the principal, reject reason)
_CAPABILITY_FIELDS = {
    CAP_OWNER: ("owner", "not_owner"),
    CAP_DEV: ("dev_address", "not_dev"),
    CAP_FEE_ADMIN: ("fee_address", "not_fee_admin"),
}


def _as_str(v: Any) -> str:
    return str(v).strip() if v is not None else ""


def capability_holder(state: Json, cap: str) -> Optional[str]:
    entry = _CAPABILITY_FIELDS.get(str(cap).upper())
    if entry is None:
        return None
    farm = state.get("farm")
    if not isinstance(farm, dict):
        return None
    holder = _as_str(farm.get(entry[0]))
    return holder or None


def capability_holders(state: Json) -> Set[str]:
    out: Set[str] = set()
    for cap in _CAPABILITY_FIELDS:
        holder = capability_holder(state, cap)
        if holder:
            out.add(holder)
    return out


def has_capability(state: Json, signer: str, cap: str) -> bool:
    holder = capability_holder(state, cap)
    return holder is not None and holder == _as_str(signer)


def require_capability(state: Json, signer: str, cap: str) -> None:
    c = str(cap).upper()
    entry = _CAPABILITY_FIELDS.get(c)
    if entry is None:
        raise ApplyError("forbidden", "unknown_capability", {"capability": cap})
    if not has_capability(state, signer, c):
        raise ApplyError("forbidden", entry[1], {"capability": c, "signer": _as_str(signer)})


def custody_accounts(state: Json) -> Set[str]:
    out: Set[str] = set()
    for root in ("farm", "vault"):
        agg = state.get(root)
        if isinstance(agg, dict):
            addr = _as_str(agg.get("address"))
            if addr:
                out.add(addr)
    return out


def require_not_custody(state: Json, account: str, *, reason: str = "custody_account") -> None:
    a = _as_str(account)
    if a in custody_accounts(state):
        raise ApplyError("forbidden", reason, {"account": a})


__all__ = [
    "CAP_DEV",
    "CAP_FEE_ADMIN",
    "CAP_OWNER",
    "capability_holder",
    "capability_holders",
    "custody_accounts",
    "has_capability",
    "require_capability",
    "require_not_custody",
]
