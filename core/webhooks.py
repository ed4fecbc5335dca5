import base64
import hashlib
import hmac

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from core.config import SHOPIFY_API_SECRET
from core.deps import get_db, get_installation_logs
from core.logger import get_logger
from core.session_token import normalize_shop_domain
from services.installation_logs import InstallationLogStore
from services.session_store import delete_shop_sessions

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


# ----------------------------
# Helpers
# ----------------------------

def verify_webhook(data: bytes, hmac_header: str | None) -> bool:
    if not hmac_header:
        return False

    digest = hmac.new(
        SHOPIFY_API_SECRET.encode(),
        data,
        hashlib.sha256
    ).digest()

    computed_hmac = base64.b64encode(digest).decode()
    return hmac.compare_digest(computed_hmac, hmac_header)


async def verified_webhook_shop(request: Request) -> str | None:
    raw_body = await request.body()
    if not verify_webhook(raw_body, request.headers.get("X-Shopify-Hmac-Sha256")):
        raise HTTPException(status_code=401, detail="Webhook HMAC failed")

    shop = request.headers.get("X-Shopify-Shop-Domain")
    return normalize_shop_domain(shop) if shop else None


# ----------------------------
# App uninstall webhook
# ----------------------------

@router.post("/app/uninstalled")
def app_uninstalled(
    shop: str | None = Depends(verified_webhook_shop),
    db: Session = Depends(get_db),
    logs: InstallationLogStore = Depends(get_installation_logs),
):
    if shop:
        deleted = delete_shop_sessions(db, shop)
        logs.clear(shop)
        logger.info(f"App uninstalled from {shop}, removed {deleted} session(s)")

    return {"status": "uninstalled processed"}


# ----------------------------
# GDPR / Privacy webhooks
# No customer data is stored, so these only acknowledge.
# ----------------------------

@router.post("/customers/data_request")
def customers_data_request(shop: str | None = Depends(verified_webhook_shop)):
    logger.info(f"customers/data_request received for {shop}")
    return {"status": "ok"}


@router.post("/customers/redact")
def customers_redact(shop: str | None = Depends(verified_webhook_shop)):
    logger.info(f"customers/redact received for {shop}")
    return {"status": "ok"}


@router.post("/shop/redact")
def shop_redact(
    shop: str | None = Depends(verified_webhook_shop),
    db: Session = Depends(get_db),
):
    if shop:
        delete_shop_sessions(db, shop)
    logger.info(f"shop/redact processed for {shop}")
    return {"status": "ok"}
