import hashlib
import hmac
import re
import secrets
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from core.config import (
    SHOPIFY_API_KEY,
    SHOPIFY_API_SECRET,
    SHOPIFY_APP_URL,
    SCOPES,
    REDIRECT_URI,
    BACKEND_TIMEOUT_SECONDS,
)
from core.deps import get_db, get_installation_logs
from core.errors import ProxyError
from core.logger import get_logger
from core.session_token import normalize_shop_domain
from services.install_hook import notify_backend_of_install
from services.installation_logs import InstallationLogStore
from services.session_store import store_offline_session
from services.shopify import AdminClient

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

STATE_COOKIE = "shopify_oauth_state"
STATE_COOKIE_MAX_AGE = 1800  # 30 minutes

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")


# ----------------------------
# Helpers
# ----------------------------

def valid_shop(shop: str) -> str:
    shop = normalize_shop_domain(shop)
    if not SHOP_DOMAIN_PATTERN.match(shop):
        raise HTTPException(status_code=400, detail="Invalid shop domain")
    return shop


def verify_hmac(params: dict, received_hmac: str) -> bool:
    sorted_params = "&".join([f"{k}={v}" for k, v in sorted(params.items())])
    digest = hmac.new(
        SHOPIFY_API_SECRET.encode(),
        sorted_params.encode(),
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(digest, received_hmac)


def request_offline_token(shop: str, code: str) -> dict:
    try:
        response = requests.post(
            f"https://{shop}/admin/oauth/access_token",
            json={
                "client_id": SHOPIFY_API_KEY,
                "client_secret": SHOPIFY_API_SECRET,
                "code": code,
                "expiring": 1,
            },
            timeout=BACKEND_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"Authorization code exchange failed for {shop}: {e}")
        raise ProxyError("Failed to reach the Shopify token endpoint") from e

    try:
        token_json = response.json() if response.ok else {}
    except ValueError:
        token_json = {}

    if not token_json.get("access_token"):
        logger.error(f"Authorization code exchange rejected for {shop}: {response.status_code} {response.text[:500]}")
        raise HTTPException(status_code=400, detail="Token exchange failed")

    return token_json


def register_uninstall_webhook(shop: str, access_token: str) -> None:
    if not SHOPIFY_APP_URL:
        logger.warning("SHOPIFY_APP_URL is not set, skipping webhook registration")
        return

    try:
        AdminClient(shop, access_token).register_webhook(
            "APP_UNINSTALLED", f"{SHOPIFY_APP_URL}/webhooks/app/uninstalled"
        )
    except ProxyError as e:
        logger.error(f"Webhook registration failed for {shop}: {e.message}")


# ----------------------------
# Install redirect
# ----------------------------

@router.get("/install")
def install(shop: str):
    shop = valid_shop(shop)

    state = secrets.token_urlsafe(24)

    params = {
        "client_id": SHOPIFY_API_KEY,
        "scope": SCOPES,
        "redirect_uri": REDIRECT_URI,
        "state": state,
    }

    url = f"https://{shop}/admin/oauth/authorize?" + urlencode(params)
    response = RedirectResponse(url)

    response.set_cookie(
        key=STATE_COOKIE,
        value=state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=True,
        samesite="lax",
    )

    return response


# ----------------------------
# OAuth callback
# ----------------------------

@router.get("/callback")
def shopify_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    logs: InstallationLogStore = Depends(get_installation_logs),
):
    params = dict(request.query_params)

    hmac_received = params.pop("hmac", None)
    code = params.get("code")
    shop = params.get("shop")
    state = params.get("state")

    if not shop or not code or not hmac_received or not state:
        raise HTTPException(status_code=400, detail="Missing shop/code/hmac/state")

    shop = valid_shop(shop)

    # Validate state (CSRF)
    cookie_state = request.cookies.get(STATE_COOKIE)
    if not cookie_state or not hmac.compare_digest(cookie_state, state):
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    if not verify_hmac(params, hmac_received):
        raise HTTPException(status_code=400, detail="HMAC validation failed")

    token_json = request_offline_token(shop, code)
    store_offline_session(db, shop, token_json)
    logger.info(f"Stored offline session for {shop}")

    access_token = token_json["access_token"]
    background_tasks.add_task(notify_backend_of_install, shop, access_token, logs)
    background_tasks.add_task(register_uninstall_webhook, shop, access_token)

    # Back into the embedded app
    response = RedirectResponse(f"https://{shop}/admin/apps/{SHOPIFY_API_KEY}")
    response.delete_cookie(STATE_COOKIE)

    return response
