# src/yieldfarm/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from yieldfarm.api.routes_public_parts.blocks import router as blocks_router
from yieldfarm.api.routes_public_parts.events import router as events_router
from yieldfarm.api.routes_public_parts.health import router as health_router
from yieldfarm.api.routes_public_parts.pools import router as pools_router
from yieldfarm.api.routes_public_parts.status import router as status_router
from yieldfarm.api.routes_public_parts.tokens import router as tokens_router
from yieldfarm.api.routes_public_parts.tx import router as tx_router
from yieldfarm.api.routes_public_parts.vault import router as vault_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(status_router, prefix="/v1", tags=["status"])
public_router.include_router(pools_router, prefix="/v1", tags=["pools"])
public_router.include_router(vault_router, prefix="/v1", tags=["vault"])
public_router.include_router(tokens_router, prefix="/v1", tags=["tokens"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])

# Environment-driven block index (non-prod only)
public_router.include_router(blocks_router, prefix="/v1", tags=["blocks"])
