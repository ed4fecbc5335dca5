from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ProxyError(Exception):
    """Base error rendered as {"success": false, "error": ..., "message": ...}."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str, *, error: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code

    def to_content(self) -> dict:
        return {"success": False, "error": self.error, "message": self.message}


class MissingTokenError(ProxyError):
    status_code = 401
    error = "Unauthorized"


class UpstreamUnreachableError(ProxyError):
    status_code = 500
    error = "Upstream service unreachable"


class GatewayTimeoutError(ProxyError):
    status_code = 504
    error = "Upstream request timed out"


class IngestValidationError(ProxyError):
    status_code = 400
    error = "Validation failed"


class TokenExchangeError(ProxyError):
    status_code = 500
    error = "Token exchange failed"

    def __init__(self, upstream_status: int, body: str):
        super().__init__(f"Token exchange failed: {upstream_status} {body[:500]}")
        self.upstream_status = upstream_status
        self.body = body[:500]


class ShopifyGraphQLError(ProxyError):
    status_code = 500
    error = "GraphQL errors"

    def __init__(self, errors: Any):
        message = "Unknown GraphQL error"
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("message") or message
        super().__init__(message)
        self.errors = errors

    def to_content(self) -> dict:
        content = super().to_content()
        content["errors"] = self.errors
        return content


class ShopifyUserError(ProxyError):
    status_code = 400
    error = "User errors"

    def __init__(self, user_errors: list, fallback: str = "Shopify rejected the request"):
        message = (user_errors[0] or {}).get("message") if user_errors else None
        super().__init__(message or fallback)
        self.user_errors = user_errors

    def to_content(self) -> dict:
        content = super().to_content()
        content["userErrors"] = self.user_errors
        return content


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a best-effort operation; callers log or discard it."""

    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None
