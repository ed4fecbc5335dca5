from typing import Set

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.routing import Match

from core.cors import cors_error, cors_headers, preflight_response
from core.errors import ProxyError
from core.logger import get_logger
from services.backend import InboundRequest, forward_to_backend, relay_response

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
API_PREFIX = "/api"


def backend_path(request: Request) -> str:
    path = request.url.path
    if path.startswith(API_PREFIX):
        path = path[len(API_PREFIX):]
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return path or "/"


def dedicated_route_methods(request: Request) -> Set[str]:
    """Methods served by a dedicated route whose path matches but whose methods do not."""
    allowed: Set[str] = set()
    for route in request.app.router.routes:
        if getattr(route, "endpoint", None) is proxy:
            continue
        match, _ = route.matches(request.scope)
        if match == Match.PARTIAL:
            allowed |= getattr(route, "methods", None) or set()
    return allowed


def method_not_allowed(request: Request, allowed: Set[str]) -> JSONResponse:
    allow = ", ".join(sorted(allowed))
    headers = cors_headers(request.headers.get("origin"), sorted(allowed))
    headers["Allow"] = allow
    return JSONResponse(
        status_code=405,
        content={
            "success": False,
            "error": "Method not allowed",
            "message": f"{request.method} is not supported on {request.url.path}, use {allow}",
        },
        headers=headers,
    )


# Registered last: every /api route without a dedicated handler lands here.
@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy(path: str, request: Request):
    if request.method == "OPTIONS":
        return preflight_response(request, PROXY_METHODS)

    # Dedicated paths hit with the wrong method are never forwarded
    allowed = dedicated_route_methods(request)
    if allowed:
        return method_not_allowed(request, allowed)

    target = backend_path(request)
    logger.info(f"Proxying {request.method} {request.url.path} -> {target}")

    try:
        inbound = await InboundRequest.from_request(request)
        response = await run_in_threadpool(forward_to_backend, inbound, target)
    except ProxyError as e:
        logger.error(f"Proxy to {target} failed: {e.message}")
        return cors_error(request, e, PROXY_METHODS, error="Failed to forward request to backend")
    except Exception as e:
        logger.exception(f"Unexpected error proxying to {target}: {e}")
        return cors_error(request, e, PROXY_METHODS, error="Failed to forward request to backend")

    return relay_response(response, cors_headers(request.headers.get("origin"), PROXY_METHODS))
