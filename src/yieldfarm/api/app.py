from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from yieldfarm.api.errors import ApiError
from yieldfarm.api.routes_public import public_router
from yieldfarm.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from yieldfarm.runtime.chain_config import apply_chain_config_to_env, load_chain_config
from yieldfarm.runtime.executor_boot import build_executor as _build_executor


def build_executor():
    """Build a FarmExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `yieldfarm.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load chain config + attach executor
      - False: keep lightweight; callers attach app.state.executor themselves
    """
    if boot_runtime:
        # Config file wins over stale env for mode / db path / log level.
        apply_chain_config_to_env(load_chain_config())

    configure_structured_logging()
    mode = os.environ.get("YIELDFARM_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Yield Farm Node API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Yield Farm Node API")

    app.state.mode = mode
    app.state.executor = build_executor() if boot_runtime else None

    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_middleware(RequestLogMiddleware)

    app.include_router(public_router)

    return app
