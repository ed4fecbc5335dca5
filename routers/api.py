from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from core.deps import get_installation_logs
from core.errors import GatewayTimeoutError, MissingTokenError, ProxyError, UpstreamUnreachableError
from core.session_token import get_session_token, verify_shopify_session_token
from core.logger import get_logger
from services.installation_logs import InstallationLogStore
from services.token_exchange import exchange_session_token

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


def _require_session_token(request: Request) -> str:
    token = get_session_token(request.headers)
    if not token:
        raise MissingTokenError("App Bridge session token not found in request headers")
    return token


@router.get("/get-token")
def get_token(request: Request, shop: str = Depends(verify_shopify_session_token)):
    return {
        "success": True,
        "token": _require_session_token(request),
        "message": "Session token retrieved successfully",
    }


@router.get("/exchange-token")
async def exchange_token(request: Request, shop: str = Depends(verify_shopify_session_token)):
    session_token = _require_session_token(request)
    logger.info(f"Exchanging session token for {shop}: {session_token[:12]}...")

    try:
        token_data = await run_in_threadpool(exchange_session_token, session_token, shop)
    except (UpstreamUnreachableError, GatewayTimeoutError) as e:
        raise ProxyError(e.message, error="Token exchange failed", status_code=e.status_code) from e

    return {
        "success": True,
        "access_token": token_data.get("access_token"),
        "refresh_token": token_data.get("refresh_token"),
        "expires_in": token_data.get("expires_in"),
        "refresh_token_expires_in": token_data.get("refresh_token_expires_in"),
        "scope": token_data.get("scope"),
        "shop": shop,
        "message": "Expiring offline access token obtained successfully",
    }


@router.get("/installation-logs")
def installation_logs(
    shop: str = Depends(verify_shopify_session_token),
    logs: InstallationLogStore = Depends(get_installation_logs),
):
    entries = logs.get(shop)
    return {"success": True, "shop": shop, "logs": [e.to_dict() for e in entries], "count": len(entries)}
