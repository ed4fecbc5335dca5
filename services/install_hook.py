from typing import Optional
from urllib.parse import quote

import requests

from core import config
from core.logger import get_logger
from services.installation_logs import InstallationLog, InstallationLogStore

logger = get_logger(__name__)

RESPONSE_PREVIEW_CHARS = 200


def notify_backend_of_install(
    shop: Optional[str],
    access_token: Optional[str],
    logs: InstallationLogStore,
) -> Optional[InstallationLog]:
    """
    Tell the backend a shop finished OAuth so it can provision the shop.

    Best effort: every failure is recorded in `logs` and returned, nothing is
    raised, so the install flow never fails because of the backend.
    """
    if not shop or not access_token:
        logger.warning(f"Install hook skipped: shop={shop!r}, has_access_token={bool(access_token)}")
        return None

    auth_url = f"{config.backend_base_url()}/auth?shop={quote(shop, safe='')}"
    logger.info(f"Install hook: GET {auth_url}")

    try:
        response = requests.get(
            auth_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {access_token}",
                "X-Shopify-Shop-Domain": shop,
            },
            timeout=config.BACKEND_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"Install hook failed for {shop}: {e}")
        entry = InstallationLog(
            shop=shop,
            auth_url=auth_url,
            status="error",
            message=f"Failed to send GET: {e}",
        )
        logs.record(entry)
        return entry

    preview = response.text[:RESPONSE_PREVIEW_CHARS]
    if response.ok:
        logger.info(f"Install hook succeeded for {shop}: {preview}")
        entry = InstallationLog(
            shop=shop,
            auth_url=auth_url,
            status="success",
            message="Successfully sent GET to backend",
            backend_response=preview,
        )
    else:
        logger.error(f"Install hook got {response.status_code} for {shop}: {preview}")
        entry = InstallationLog(
            shop=shop,
            auth_url=auth_url,
            status="error",
            message=f"Backend returned status {response.status_code}",
            backend_response=preview,
        )

    logs.record(entry)
    return entry
