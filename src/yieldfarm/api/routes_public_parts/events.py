from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from yieldfarm.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()

Json = Dict[str, Any]


@router.get("/events")
def v1_events(request: Request, since: Optional[str] = None, limit: Optional[str] = None, event: Optional[str] = None) -> Json:
    """Persisted events with id > since, oldest first. Use next_since to page."""
    ex = _executor(request)
    since_i = max(0, _int_param(since, 0))
    limit_i = max(1, min(_int_param(limit, 100), 1000))
    items = ex.events(since=since_i, limit=limit_i, event=(event or "").strip() or None)
    next_since = items[-1]["id"] if items else since_i
    return {"ok": True, "events": items, "next_since": next_since}
