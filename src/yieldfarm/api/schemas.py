from __future__ import annotations

"""Pydantic request schemas for the public API.

The canonical tx payload schemas live in runtime.tx_schema. These exist only
for HTTP input validation.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., min_length=1, description="e.g. FARM_DEPOSIT")
    signer: str = Field(..., min_length=1, description="Account id, e.g. @alice")
    nonce: int = Field(default=0, ge=0, description="Next account nonce when signatures are required")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(default="", description="Hex Ed25519 signature")

    model_config = {"extra": "forbid"}


class BlocksAdvanceRequest(BaseModel):
    n: int = Field(default=1, ge=1, le=1_000_000, description="Blocks to advance")

    model_config = {"extra": "forbid"}
