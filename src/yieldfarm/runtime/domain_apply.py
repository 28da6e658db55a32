# src/yieldfarm/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict

from yieldfarm.runtime.domain_dispatch import ApplyError, apply_tx
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _record_nonce(state: Json, env: TxEnvelope) -> None:
    """Advance the signer's nonce for registered accounts.

    Only called on the snapshot of a successful apply, so a rejected tx never
    burns a nonce.
    """
    acct = state.get("accounts", {}).get(str(env.signer or "").strip())
    if not isinstance(acct, dict):
        return
    if int(env.nonce or 0) > int(acct.get("nonce", 0) or 0):
        acct["nonce"] = int(env.nonce)


def apply_tx_atomic(state: Json, env: Any) -> Json:
    """Apply a tx with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly.

    On ApplyError (or any other failure):
      - state remains unchanged, events included.
    """

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)

    meta = apply_tx(snapshot, env if isinstance(env, dict) else env_norm)
    _record_nonce(snapshot, env_norm)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
