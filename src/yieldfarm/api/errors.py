from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


# Apply / admission error code -> HTTP status
_STATUS_BY_CODE: Dict[str, int] = {
    "forbidden": 403,
    "invalid_payload": 400,
    "insufficient_balance": 409,
    "precondition_failed": 409,
    "conflict": 409,
    "not_found": 404,
    "tx_unimplemented": 400,
    "bad_signature": 401,
    "bad_nonce": 409,
    "tx_too_large": 413,
}


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_code(code: str, message: str, details: Optional[Any] = None) -> "ApiError":
        d = details if isinstance(details, dict) else ({} if details is None else {"details": details})
        return ApiError(_STATUS_BY_CODE.get(str(code), 400), str(code), message, d)
