"""
Errors delivered to completion callbacks.

Every failure an operation can produce is a :class:`PaymentsError`. The
subclass tells the caller whether to fix the input, fix the credential or
try again later; ``retryable`` answers the last question directly.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

__all__ = [
    "DecodingError",
    "InvalidInputError",
    "NotFoundError",
    "PaymentsError",
    "PlatformError",
    "RequestCancelledError",
    "TransportError",
    "UnauthorizedError",
]


class PaymentsError(Exception):
    """Base class for all operation errors."""

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        error_type: Optional[str] = None,
        code: Optional[str] = None,
        param: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.error_type = error_type
        self.code = code
        self.param = param
        self.request_id = request_id

    @property
    def retryable(self) -> bool:
        return False

    @classmethod
    def from_error_body(
        cls,
        body: Mapping[str, Any],
        *,
        http_status: int,
        request_id: Optional[str] = None,
        default_message: str = "",
    ) -> "PaymentsError":
        """Build an error from the platform's ``{"error": {...}}`` envelope."""
        detail = body.get("error") if isinstance(body, Mapping) else None
        if not isinstance(detail, Mapping):
            detail = {}
        return cls(
            str(detail.get("message") or default_message or f"HTTP {http_status}"),
            http_status=http_status,
            error_type=detail.get("type"),
            code=detail.get("code"),
            param=detail.get("param"),
            request_id=request_id,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, http_status={self.http_status!r}, "
            f"code={self.code!r})"
        )


class InvalidInputError(PaymentsError):
    """Parameters were rejected before any request was sent."""


class UnauthorizedError(PaymentsError):
    """The credential is missing, expired, or was refused by the platform."""


class NotFoundError(PaymentsError):
    """The resource, or its association with the customer, does not exist."""


class TransportError(PaymentsError):
    """The request never produced an HTTP response (connection, timeout, TLS)."""

    @property
    def retryable(self) -> bool:
        return True


class PlatformError(PaymentsError):
    """The platform answered with a non-2xx status not covered above."""

    @property
    def retryable(self) -> bool:
        return self.http_status is not None and (
            self.http_status == 429 or self.http_status >= 500
        )


class DecodingError(PaymentsError):
    """The response body did not have the expected shape."""


class RequestCancelledError(PaymentsError):
    """The request was cancelled through its handle before completing."""
