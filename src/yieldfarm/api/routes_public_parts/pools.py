from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from yieldfarm.api.routes_public_parts.common import _read, _view

router = APIRouter()

Json = Dict[str, Any]


@router.get("/pools")
def v1_pools(request: Request) -> Json:
    view = _view(request)
    pools = _read(view.pools)
    return {"ok": True, "height": view.height, "pool_length": len(pools), "pools": pools}


@router.get("/pools/{pid}")
def v1_pool(request: Request, pid: int) -> Json:
    view = _view(request)
    return {"ok": True, "height": view.height, "pool": _read(lambda: view.pool(pid))}


@router.get("/pools/{pid}/users/{account}")
def v1_pool_user(request: Request, pid: int, account: str) -> Json:
    """Stake record plus the reward the account would receive if it claimed now."""
    view = _view(request)
    stake = _read(lambda: view.user_stake(pid, account))
    return {"ok": True, "height": view.height, "pid": pid, "account": account, **stake}
