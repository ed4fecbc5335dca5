from typing import Any, Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from core.config import DEBUG
from core.errors import ProxyError

DEFAULT_ALLOW_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = "86400"


def cors_headers(
    origin: Optional[str],
    methods: Iterable[str],
    allow_headers: str = DEFAULT_ALLOW_HEADERS,
) -> dict:
    """
    CORS headers for storefront and extension callers.

    A present Origin is echoed and allowed credentials. Without one the
    wildcard is used and credentials are never advertised.
    """
    headers = {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ", ".join(methods),
        "Access-Control-Allow-Headers": allow_headers,
    }
    if origin:
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = "Origin"
    return headers


def preflight_response(
    request: Request,
    methods: Iterable[str],
    allow_headers: str = DEFAULT_ALLOW_HEADERS,
) -> Response:
    headers = cors_headers(request.headers.get("origin"), methods, allow_headers)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return Response(status_code=204, headers=headers)


def cors_json(
    request: Request,
    content: Any,
    methods: Iterable[str],
    status_code: int = 200,
    allow_headers: str = DEFAULT_ALLOW_HEADERS,
) -> JSONResponse:
    headers = cors_headers(request.headers.get("origin"), methods, allow_headers)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def cors_error(
    request: Request,
    exc: Exception,
    methods: Iterable[str],
    error: str,
    allow_headers: str = DEFAULT_ALLOW_HEADERS,
) -> JSONResponse:
    """Error body for CORS routes; internal details only leave the process in DEBUG."""
    if isinstance(exc, ProxyError):
        content = exc.to_content()
        status_code = exc.status_code
        if status_code >= 500:
            content["error"] = error
    else:
        content = {"success": False, "error": error, "message": "An unexpected error occurred"}
        status_code = 500

    if DEBUG:
        content["details"] = repr(exc.__cause__ or exc)

    return cors_json(request, content, methods, status_code=status_code, allow_headers=allow_headers)
