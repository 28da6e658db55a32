# src/yieldfarm/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Farm state is a nested JSON-like dict that is mutated deterministically by the
apply/* modules. This module is the single place that:

  - validates the state is dict-like
  - ensures core top-level containers exist (so domain modules can rely on them)
  - checks the cross-record accounting invariants (used by tests and at boot)

Domain-specific containers (farm / vault internals) remain the responsibility of
the corresponding apply/* module.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List

Json = Dict[str, Any]


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st is not a MutableMapping
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in ("accounts", "params", "tokens"):
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    ev = st.get("events")
    if ev is None:
        st["events"] = []
    elif not isinstance(ev, list):
        raise TypeError(f"state['events'] must be list, got {type(ev)}")

    st.setdefault("height", 0)
    return st  # type: ignore[return-value]


def block_height(st: Json) -> int:
    """Current block index as supplied by the environment."""
    try:
        return int(st.get("height", 0) or 0)
    except Exception:
        return 0


def emit_event(st: Json, event: str, **fields: Any) -> Json:
    """Append an observable event for the tx being applied.

    Events live in state so they roll back together with a rejected tx.
    """
    ev: Json = {"event": str(event), "height": block_height(st)}
    ev.update(fields)
    events = st.get("events")
    if not isinstance(events, list):
        events = []
        st["events"] = events
    events.append(ev)
    return ev


def check_invariants(st: Json) -> List[str]:
    """Return a list of violated accounting invariants (empty when healthy).

    Checked:
      - farm.total_weight == sum(pool.weight)
      - every vault lock has total_released <= total_locked
      - vault.total_locked == sum(total_locked - total_released)
      - each token's total_supply == sum(balances)
    """
    problems: List[str] = []

    farm = st.get("farm")
    if isinstance(farm, dict):
        pools = farm.get("pools") if isinstance(farm.get("pools"), list) else []
        weight_sum = sum(int(p.get("weight", 0)) for p in pools if isinstance(p, dict))
        if int(farm.get("total_weight", 0)) != weight_sum:
            problems.append(f"total_weight:{farm.get('total_weight')}!={weight_sum}")

    vault = st.get("vault")
    if isinstance(vault, dict):
        locks = vault.get("locks") if isinstance(vault.get("locks"), dict) else {}
        outstanding = 0
        for acct, rec in sorted(locks.items()):
            locked = int(rec.get("total_locked", 0))
            released = int(rec.get("total_released", 0))
            if released > locked:
                problems.append(f"released_above_locked:{acct}")
            outstanding += locked - released
        if int(vault.get("total_locked", 0)) != outstanding:
            problems.append(f"vault_total_locked:{vault.get('total_locked')}!={outstanding}")

    tokens = st.get("tokens")
    if isinstance(tokens, dict):
        for token_id, tok in sorted(tokens.items()):
            if not isinstance(tok, dict):
                continue
            bal = tok.get("balances") if isinstance(tok.get("balances"), dict) else {}
            total = sum(int(v) for v in bal.values())
            if int(tok.get("total_supply", 0)) != total:
                problems.append(f"total_supply:{token_id}:{tok.get('total_supply')}!={total}")

    return problems


__all__ = ["block_height", "check_invariants", "emit_event", "ensure_state"]
