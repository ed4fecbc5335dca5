"""
Campaign offers for the admin app and the thank-you-page extension.

Extension calls carry no session token; they name the shop explicitly and the
shop's stored offline token is used towards the backend instead.
"""
import json
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from core.cors import cors_error, cors_headers, preflight_response
from core.deps import get_db
from core.errors import MissingTokenError, ProxyError
from core.logger import get_logger
from core.session_token import get_session_token
from services.backend import InboundRequest, forward_to_backend, relay_response
from services.session_store import find_offline_access_token

logger = get_logger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])

OFFERS_METHODS = ["GET", "POST", "OPTIONS"]
OFFERS_PATH = "/campaigns/offers"


def offers_query_from_body(body: dict) -> str:
    params = {}
    if body.get("surface"):
        params["surface"] = body["surface"]
    product_ids = body.get("productIds")
    if product_ids:
        params["productIds"] = ",".join(str(p) for p in product_ids) if isinstance(product_ids, list) else product_ids
    return urlencode(params)


def _parse_json_body(raw: Optional[bytes]) -> Optional[dict]:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


async def _resolve_shop_token(db: Session, shop: Optional[str]) -> str:
    if not shop:
        raise MissingTokenError("No session token and no shop domain provided")

    token = await run_in_threadpool(find_offline_access_token, db, shop)
    if not token:
        logger.warning(f"No offline access token stored for {shop}")
        raise MissingTokenError(f"No access token found for shop {shop}")
    return token


@router.options("/offers")
def offers_preflight(request: Request):
    return preflight_response(request, OFFERS_METHODS)


@router.api_route("/offers", methods=["GET", "POST"])
async def offers(request: Request, db: Session = Depends(get_db)):
    """
    GET  /api/campaigns/offers?surface=thank-you-page&productIds=gid://...
    POST /api/campaigns/offers {"surface": ..., "productIds": [...], "shop": ...}

    Always forwarded to the backend as GET /campaigns/offers?...
    """
    try:
        inbound = await InboundRequest.from_request(request)
        is_extension_request = get_session_token(request.headers) is None

        query = request.url.query
        shop = request.query_params.get("shop")

        if inbound.method == "POST":
            body = _parse_json_body(inbound.body)
            if body is not None:
                query = offers_query_from_body(body)
                shop = body.get("shop") or shop
            else:
                logger.info("Offers body is not a JSON object, using URL query params")

        shop_token = await _resolve_shop_token(db, shop) if is_extension_request else None

        target = f"{OFFERS_PATH}?{query}" if query else OFFERS_PATH
        logger.info(f"Offers request: extension={is_extension_request} shop={shop} -> {target}")

        response = await run_in_threadpool(
            forward_to_backend, inbound, target, method="GET", shop_access_token=shop_token
        )
    except ProxyError as e:
        logger.error(f"Offers request failed: {e.message}")
        return cors_error(request, e, OFFERS_METHODS, error="Failed to fetch offers")
    except Exception as e:
        logger.exception(f"Unexpected error in offers request: {e}")
        return cors_error(request, e, OFFERS_METHODS, error="Failed to fetch offers")

    return relay_response(response, cors_headers(request.headers.get("origin"), OFFERS_METHODS))
