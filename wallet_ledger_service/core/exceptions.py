"""Error taxonomy for the wallet ledger service.

Every error carries a stable ``error_code`` and a human-readable message so
clients can tell financial failures (insufficient funds, key quota) apart from
authorization failures and react accordingly.
"""

from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from wallet_ledger_service.schemas.common import ErrorResponse


class WalletServiceError(Exception):
    """Base exception for all wallet ledger errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "WALLET_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.status_code}] {self.error_code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(WalletServiceError):
    """Raised when a wallet, transaction or key is absent or not owned by the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class InvalidOperation(WalletServiceError):
    """Raised for requests that can never succeed as issued."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_OPERATION"


class QuotaExceeded(InvalidOperation):
    """Raised when a user already holds the maximum number of active API keys."""

    error_code = "API_KEY_QUOTA_EXCEEDED"


class InsufficientFunds(WalletServiceError):
    """Raised when the sender's balance does not cover the requested amount."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INSUFFICIENT_FUNDS"


class Unauthenticated(WalletServiceError):
    """Raised when neither a session token nor an API key identifies the caller."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHENTICATED"


class Forbidden(WalletServiceError):
    """Raised when an API key lacks a capability the operation requires."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN_SCOPE"


class UpstreamFailure(WalletServiceError):
    """Raised when the payment gateway call fails."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_FAILURE"


class SignatureInvalid(WalletServiceError):
    """Raised when a gateway notification fails signature verification."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_SIGNATURE"


async def wallet_error_handler(request: Request, exc: WalletServiceError) -> JSONResponse:
    """Render a WalletServiceError as an ErrorResponse body."""
    body = ErrorResponse(**exc.to_dict())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))
