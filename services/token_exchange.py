import requests

from core.config import SHOPIFY_API_KEY, SHOPIFY_API_SECRET, BACKEND_TIMEOUT_SECONDS
from core.errors import GatewayTimeoutError, TokenExchangeError, UpstreamUnreachableError
from core.logger import get_logger

logger = get_logger(__name__)

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
OFFLINE_ACCESS_TOKEN_TYPE = "urn:shopify:params:oauth:token-type:offline-access-token"


def exchange_session_token(session_token: str, shop: str) -> dict:
    """
    Trade an App Bridge session token for an expiring offline access token.

    Returns Shopify's JSON body as-is: access_token plus, for expiring
    tokens, refresh_token, expires_in, refresh_token_expires_in and scope.
    The result is not stored here.
    """
    url = f"https://{shop}/admin/oauth/access_token"
    form = {
        "client_id": SHOPIFY_API_KEY,
        "client_secret": SHOPIFY_API_SECRET,
        "grant_type": TOKEN_EXCHANGE_GRANT,
        "subject_token": session_token,
        "subject_token_type": ID_TOKEN_TYPE,
        "requested_token_type": OFFLINE_ACCESS_TOKEN_TYPE,
        "expiring": "1",
    }

    logger.info(f"Exchanging session token for offline access token, shop={shop}")

    try:
        response = requests.post(
            url,
            data=form,
            headers={"Accept": "application/json"},
            timeout=BACKEND_TIMEOUT_SECONDS,
        )
    except requests.Timeout as e:
        logger.error(f"Token exchange timed out for {shop}: {e}")
        raise GatewayTimeoutError("Token exchange timed out") from e
    except requests.RequestException as e:
        logger.error(f"Token exchange request failed for {shop}: {e}")
        raise UpstreamUnreachableError("Failed to reach the Shopify token endpoint") from e

    if not response.ok:
        logger.error(f"Token exchange failed for {shop}: {response.status_code} {response.text[:500]}")
        raise TokenExchangeError(response.status_code, response.text)

    try:
        data = response.json()
    except ValueError as e:
        logger.error(f"Token exchange returned a non-JSON body for {shop}: {response.text[:500]}")
        raise TokenExchangeError(response.status_code, response.text) from e

    logger.info(
        f"Token exchange succeeded for {shop}: "
        f"refresh_token={'yes' if data.get('refresh_token') else 'no'}, "
        f"expires_in={data.get('expires_in', 'n/a')}"
    )
    return data
