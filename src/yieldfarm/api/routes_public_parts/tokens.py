from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from yieldfarm.api.routes_public_parts.common import _read, _view

router = APIRouter()

Json = Dict[str, Any]


@router.get("/tokens/{token}/balances/{account}")
def v1_token_balance(request: Request, token: str, account: str) -> Json:
    view = _view(request)
    balance = _read(lambda: view.balance_of(token, account))
    return {"ok": True, "token": token, "account": account, "balance": balance}
