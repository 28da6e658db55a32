from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from yieldfarm.api.errors import ApiError
from yieldfarm.api.routes_public_parts.common import _executor, _mode
from yieldfarm.api.schemas import BlocksAdvanceRequest
from yieldfarm.api.structured_logging import note_ledger_outcome

router = APIRouter()

Json = Dict[str, Any]


@router.post("/blocks/advance")
def v1_blocks_advance(request: Request, body: Optional[BlocksAdvanceRequest] = None) -> Json:
    """Move the block index forward. Disabled in prod, where the host environment owns it."""
    if _mode(request) == "prod":
        raise ApiError.forbidden("blocks_advance_disabled", "block advancing is not available in prod mode", {})
    ex = _executor(request)
    n = body.n if body is not None else 1
    previous = ex.height
    height = ex.advance_blocks(n)
    note_ledger_outcome(request, outcome="blocks_advanced", previous=previous, height=height)
    return {"ok": True, "previous": previous, "height": height}
