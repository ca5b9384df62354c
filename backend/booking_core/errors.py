from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


class ValidationFailed(AppError):
    """Malformed or missing caller input; raised before storage is touched."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "validation_error") -> None:
        super().__init__(422, code, message, details)


class NotFound(AppError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "not_found") -> None:
        super().__init__(404, code, message, details)


class Unauthorized(AppError):
    def __init__(self, message: str = "Authentication required", code: str = "unauthorized") -> None:
        super().__init__(401, code, message)


class Forbidden(AppError):
    def __init__(self, message: str = "Not allowed", details: Optional[Dict[str, Any]] = None, code: str = "forbidden") -> None:
        super().__init__(403, code, message, details)


class Conflict(AppError):
    """Stock exhausted, incompatible booking state or a lost concurrent write.

    Only conflicts with retryable=True are worth retrying as-is.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "conflict",
        retryable: bool = False,
    ) -> None:
        super().__init__(409, code, message, details, retryable)


class InternalError(AppError):
    def __init__(self, message: str = "Unexpected server error", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(500, "internal_error", message, details)


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
