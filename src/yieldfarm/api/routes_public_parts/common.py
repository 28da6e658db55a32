from __future__ import annotations

import os
from typing import Any, Callable, Dict, TypeVar

from fastapi import Request

from yieldfarm.api.errors import ApiError
from yieldfarm.ledger.state import FarmView
from yieldfarm.runtime.errors import ApplyError

Json = Dict[str, Any]
T = TypeVar("T")


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> FarmView:
    return _executor(request).view()


def _mode(request: Request) -> str:
    m = getattr(request.app.state, "mode", None)
    if isinstance(m, str) and m.strip():
        return m.strip().lower()
    return (os.environ.get("YIELDFARM_MODE") or "prod").strip().lower()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        if s == "":
            return int(default)
        return int(s)
    except ValueError:
        return int(default)


def _read(fn: Callable[[], T]) -> T:
    """Run a read-side projection, mapping apply errors onto HTTP errors."""
    try:
        return fn()
    except ApplyError as e:
        raise ApiError.from_code(e.code, e.reason, e.details) from e
