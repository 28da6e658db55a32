# src/yieldfarm/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from yieldfarm.runtime.errors import ApplyError
from yieldfarm.runtime.gates import require_not_custody
from yieldfarm.runtime.state_invariants import ensure_state
from yieldfarm.runtime.tx_admission_types import TxEnvelope
from yieldfarm.runtime.tx_schema import validate_payload

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from yieldfarm.runtime.apply.accounts import apply_accounts
from yieldfarm.runtime.apply.farm import apply_farm
from yieldfarm.runtime.apply.tokens import apply_tokens
from yieldfarm.runtime.apply.vault import apply_vault

Json = Dict[str, Any]
ApplyFn = Callable[[Json, Any], Optional[Json]]


def _get(env: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a TxEnvelope-like object or a dict.

    Tests and tools pass raw dict envelopes directly into apply_tx(), while
    the executor passes a TxEnvelope object.
    """

    if isinstance(env, dict):
        return env.get(key, default)
    return getattr(env, key, default)


def _tx_type(env: Any) -> str:
    return str(_get(env, "tx_type", "") or "").strip().upper()


def _enforce_payload_schema(env: Any) -> None:
    t = _tx_type(env)
    ok, code, reason, details = validate_payload(tx_type=t, payload=_get(env, "payload", None))
    if not ok:
        out: Json = {"tx_type": t}
        if details:
            out.update(details)
        raise ApplyError(code or "invalid_payload", reason, out)


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_accounts,
    apply_tokens,
    apply_farm,
    apply_vault,
)


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it."""

    ensure_state(state)

    t = _tx_type(env)
    if not t:
        raise ApplyError("invalid_payload", "missing_tx_type", {"tx_type": t})
    if not str(_get(env, "signer", "") or "").strip():
        raise ApplyError("invalid_payload", "missing_signer", {"tx_type": t})
    require_not_custody(state, str(_get(env, "signer", "")), reason="custody_account_cannot_sign")

    # Shape check runs on the raw payload, before normalization copies it.
    _enforce_payload_schema(env)

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            code = getattr(e, "code", None)
            reason = getattr(e, "reason", None)
            details = getattr(e, "details", None)

            if code is not None or reason is not None:
                raise ApplyError(
                    str(code or "domain_error"),
                    str(reason or type(e).__name__),
                    details if details is not None else {"tx_type": t, "domain": fn.__name__},
                ) from e

            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["ApplyError", "apply_tx"]
