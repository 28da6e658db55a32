from __future__ import annotations

"""Transaction payload schemas.

Early shape checks (types/required keys) for every known tx type. Unknown keys
are rejected. Apply-layer code still enforces semantics: ranges such as bps
caps and non-negative amounts, and anything that depends on state.
"""

from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, ValidationError

Json = Dict[str, Any]


# ---------------------------------------------------------------------------
# Base Models
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid")


class _EmptyPayload(_StrictModel):
    """Payload must be an empty object (or omitted)."""


# ---------------------------------------------------------------------------
# Accounts / tokens
# ---------------------------------------------------------------------------


class AccountRegisterPayload(_StrictModel):
    pubkey: StrictStr = Field(..., min_length=1)


class TokenTransferPayload(_StrictModel):
    token: StrictStr = Field(..., min_length=1)
    to: StrictStr = Field(..., min_length=1)
    amount: StrictInt


class TokenApprovePayload(_StrictModel):
    token: StrictStr = Field(..., min_length=1)
    spender: StrictStr = Field(..., min_length=1)
    amount: StrictInt


# ---------------------------------------------------------------------------
# Farm
# ---------------------------------------------------------------------------


class FarmPoolAddPayload(_StrictModel):
    weight: StrictInt
    staked_token: StrictStr = Field(..., min_length=1)
    deposit_fee_bps: StrictInt = 0
    lock_fraction_bps: StrictInt = 0
    sync_first: StrictBool = False


class FarmPoolSetPayload(_StrictModel):
    pid: StrictInt
    weight: StrictInt
    # Omitted fields keep the pool's current value.
    deposit_fee_bps: Optional[StrictInt] = None
    lock_fraction_bps: Optional[StrictInt] = None
    sync_first: StrictBool = False


class FarmPoolSyncPayload(_StrictModel):
    pid: StrictInt


class FarmAmountPayload(_StrictModel):
    # FARM_DEPOSIT / FARM_WITHDRAW
    pid: StrictInt
    amount: StrictInt


class FarmEmergencyWithdrawPayload(_StrictModel):
    pid: StrictInt


class FarmDevAddressSetPayload(_StrictModel):
    dev_address: StrictStr = Field(..., min_length=1)


class FarmFeeAddressSetPayload(_StrictModel):
    fee_address: StrictStr = Field(..., min_length=1)


class FarmOwnershipTransferPayload(_StrictModel):
    new_owner: StrictStr = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------


class VaultLockPayload(_StrictModel):
    beneficiary: StrictStr = Field(..., min_length=1)
    amount: StrictInt


Schema = Type[BaseModel]

_SCHEMA_BY_TX_TYPE: Dict[str, Schema] = {
    "ACCOUNT_REGISTER": AccountRegisterPayload,
    # Tokens
    "TOKEN_TRANSFER": TokenTransferPayload,
    "TOKEN_APPROVE": TokenApprovePayload,
    # Farm
    "FARM_POOL_ADD": FarmPoolAddPayload,
    "FARM_POOL_SET": FarmPoolSetPayload,
    "FARM_POOL_SYNC": FarmPoolSyncPayload,
    "FARM_POOLS_SYNC_ALL": _EmptyPayload,
    "FARM_DEPOSIT": FarmAmountPayload,
    "FARM_WITHDRAW": FarmAmountPayload,
    "FARM_EMERGENCY_WITHDRAW": FarmEmergencyWithdrawPayload,
    "FARM_EMISSION_RATE_UPDATE": _EmptyPayload,
    "FARM_DEV_ADDRESS_SET": FarmDevAddressSetPayload,
    "FARM_FEE_ADDRESS_SET": FarmFeeAddressSetPayload,
    "FARM_OWNERSHIP_TRANSFER": FarmOwnershipTransferPayload,
    # Vault
    "VAULT_LOCK": VaultLockPayload,
    "VAULT_UNLOCK": _EmptyPayload,
}


def _schema_for(tx_type: str) -> Optional[Schema]:
    t = str(tx_type or "").strip().upper()
    if not t:
        return None
    return _SCHEMA_BY_TX_TYPE.get(t)


def known_tx_types() -> Tuple[str, ...]:
    return tuple(sorted(_SCHEMA_BY_TX_TYPE))


def validate_payload(*, tx_type: str, payload: Any) -> Tuple[bool, str, str, Optional[Dict[str, Any]]]:
    """Validate payload against its schema.

    Tx types without a schema pass through; the dispatcher rejects them.

    Returns: (ok, code, reason, details)
    """
    sch = _schema_for(tx_type)
    if sch is None:
        return True, "", "", None

    if payload is None:
        if issubclass(sch, _EmptyPayload):
            return True, "", "", None
        return False, "invalid_payload", "payload_required", None

    if not isinstance(payload, dict):
        return False, "invalid_payload", "payload_must_be_object", None

    try:
        sch(**payload)
    except ValidationError as ve:
        errors = [
            {"loc": [str(p) for p in e.get("loc", ())], "type": e.get("type"), "msg": e.get("msg")}
            for e in ve.errors()
        ]
        return False, "invalid_payload", "payload_schema_mismatch", {"errors": errors}
    return True, "", "", None


__all__ = ["known_tx_types", "validate_payload"]
