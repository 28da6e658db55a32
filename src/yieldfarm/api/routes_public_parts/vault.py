from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from yieldfarm.api.routes_public_parts.common import _read, _view

router = APIRouter()

Json = Dict[str, Any]


@router.get("/vault/{account}")
def v1_vault_lock(request: Request, account: str) -> Json:
    view = _view(request)
    rec = _read(lambda: view.lock_of(account))
    return {"ok": True, "height": view.height, "account": account, **rec}
