from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from yieldfarm.api.routes_public_parts.common import _executor, _mode, _view

router = APIRouter()

Json = Dict[str, Any]


@router.get("/status")
def v1_status(request: Request) -> Json:
    ex = _executor(request)
    view = _view(request)
    farm = view.farm
    vault = view.vault
    return {
        "ok": True,
        "chain_id": view.chain_id,
        "mode": _mode(request),
        "height": view.height,
        "require_signatures": bool(ex.require_signatures),
        "farm": {
            "address": farm.get("address"),
            "reward_token": farm.get("reward_token"),
            "owner": farm.get("owner"),
            "dev_address": farm.get("dev_address"),
            "fee_address": farm.get("fee_address"),
            "start_block": farm.get("start_block"),
            "total_weight": farm.get("total_weight"),
            "pool_length": view.pool_length(),
            "emission": view.emission(),
        },
        "vault": {
            "address": vault.get("address"),
            "token": vault.get("token"),
            "start_release_block": vault.get("start_release_block"),
            "end_release_block": vault.get("end_release_block"),
            "total_locked": vault.get("total_locked"),
        },
    }
