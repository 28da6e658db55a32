# src/yieldfarm/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from yieldfarm.runtime.structured_log import log_event

Json = Dict[str, Any]

_HANDLER_MARK = "_yieldfarm_jsonl"


def configure_structured_logging() -> None:
    """Route stdlib logging to stdout as one JSON object per line.

    Level from YIELDFARM_LOG_LEVEL (default INFO). Adds a single handler to the
    root logger and leaves other handlers alone; safe to call repeatedly.
    """
    level_name = (os.environ.get("YIELDFARM_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if any(getattr(h, _HANDLER_MARK, False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    setattr(handler, _HANDLER_MARK, True)
    root.addHandler(handler)


def note_ledger_outcome(request: Request, **fields: Any) -> None:
    """Attach ledger context (tx type, signer, outcome, height) to this request's log line."""
    current = getattr(request.state, "ledger_log", None)
    if not isinstance(current, dict):
        current = {}
        request.state.ledger_log = current
    current.update({k: v for k, v in fields.items() if v is not None})


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` line per request.

    Write routes add what they did to the ledger through note_ledger_outcome:
    `/v1/tx/submit` records tx_type, signer and the result or rejection code,
    `/v1/blocks/advance` the new height. YIELDFARM_LOG_REQUESTS=0 disables it.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("YIELDFARM_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("yieldfarm.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        finally:
            ledger = getattr(request.state, "ledger_log", None)
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=str(request.url.path or ""),
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                **(ledger if isinstance(ledger, dict) else {}),
            )
