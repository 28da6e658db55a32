from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def v1_health(request: Request) -> dict[str, Any]:
    # health must never crash; executor fields are best-effort
    ex = getattr(request.app.state, "executor", None)
    chain_id = getattr(ex, "chain_id", None) if ex is not None else None
    height = ex.height if ex is not None else None
    return {
        "ok": True,
        "service": "yieldfarm-node",
        "version": "v1",
        "ts_ms": _now_ms(),
        "chain_id": chain_id,
        "height": height,
    }
