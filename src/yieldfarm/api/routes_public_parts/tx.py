from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from yieldfarm.api.errors import ApiError
from yieldfarm.api.routes_public_parts.common import _executor
from yieldfarm.api.schemas import TxSubmitRequest
from yieldfarm.api.structured_logging import note_ledger_outcome

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(request: Request, body: TxSubmitRequest) -> Json:
    """Apply a tx envelope now; the response carries the applied result and events.

    Returns:
      { ok, result, events, height }
    """
    ex = _executor(request)
    note_ledger_outcome(request, tx_type=body.tx_type.strip().upper(), signer=body.signer)
    meta = ex.submit_tx(body.model_dump())

    if not isinstance(meta, dict) or not meta.get("ok"):
        code = str(meta.get("error") if isinstance(meta, dict) else "submit_failed")
        reason = str(meta.get("reason") or "tx rejected") if isinstance(meta, dict) else "tx rejected"
        note_ledger_outcome(request, outcome=code, reason=reason)
        raise ApiError.from_code(code, reason, meta.get("details") if isinstance(meta, dict) else None)

    note_ledger_outcome(request, outcome="applied", height=meta.get("height"))
    return meta
