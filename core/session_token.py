import re
from typing import Mapping, Optional
from urllib.parse import urlparse

import jwt
from fastapi import Header, HTTPException, status

from core.config import SHOPIFY_API_KEY, SHOPIFY_API_SECRET

BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

RETRY_HEADER = {"X-Shopify-Retry-Invalid-Session-Request": "1"}


def get_session_token(headers: Mapping[str, str]) -> Optional[str]:
    """
    Return the token from an `authorization: Bearer <token>` header, or None.

    `headers` is expected to be case-insensitive (starlette Headers); plain
    dicts are searched case-insensitively as a fallback.
    """
    value = headers.get("authorization")
    if value is None and isinstance(headers, dict):
        value = next((v for k, v in headers.items() if k.lower() == "authorization"), None)
    if not value:
        return None

    match = BEARER_PATTERN.match(value.strip())
    return match.group(1) if match else None


def normalize_shop_domain(value: str) -> str:
    raw = (value or "").strip()
    if raw.startswith("http://") or raw.startswith("https://"):
        parsed = urlparse(raw)
        return parsed.netloc.lower()
    return raw.lower().strip("/")


def _unauthorized(message: str):
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"success": False, "error": "Unauthorized", "message": message},
        headers=RETRY_HEADER,
    )


def verify_shopify_session_token(authorization: Optional[str] = Header(default=None)) -> str:
    """Verify an App Bridge session token and return the shop domain it was issued for."""
    token = get_session_token({"authorization": authorization}) if authorization else None
    if not token:
        _unauthorized("Missing Bearer session token")

    try:
        payload = jwt.decode(
            token,
            SHOPIFY_API_SECRET,
            algorithms=["HS256"],
            audience=SHOPIFY_API_KEY,
            options={"require": ["exp", "aud", "dest"]},
        )
    except jwt.ExpiredSignatureError:
        _unauthorized("Session token expired")
    except jwt.InvalidTokenError:
        _unauthorized("Session token verification failed")

    shop_domain = normalize_shop_domain(payload.get("dest", ""))
    if not shop_domain:
        _unauthorized("Session token missing dest")

    return shop_domain
