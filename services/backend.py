"""
Forwarding of admin and storefront requests to the campaign backend.

The inbound request is snapshotted once at the route boundary
(`InboundRequest.from_request`), turned into a `ForwardedRequest` and sent
with a single `requests` call. Nothing is retried or cached.
"""
from dataclasses import dataclass, field
from typing import Mapping, Optional

import requests
from fastapi import Request, Response

from core import config
from core.errors import GatewayTimeoutError, UpstreamUnreachableError
from core.logger import get_logger
from core.session_token import get_session_token

logger = get_logger(__name__)

BODYLESS_METHODS = ("GET", "HEAD")

SHOP_DOMAIN_HEADER = "x-shopify-shop-domain"
HMAC_HEADER = "x-shopify-hmac-sha256"


@dataclass(frozen=True)
class InboundRequest:
    method: str
    headers: Mapping[str, str]
    query_string: str = ""
    body: Optional[bytes] = None

    @classmethod
    async def from_request(cls, request: Request, read_body: bool = True) -> "InboundRequest":
        body = None
        if read_body and request.method.upper() not in BODYLESS_METHODS:
            body = await request.body()
        return cls(
            method=request.method.upper(),
            headers=request.headers,
            query_string=request.url.query,
            body=body,
        )


@dataclass(frozen=True)
class ForwardedRequest:
    method: str
    path: str
    query_string: str = ""
    body: Optional[bytes] = None
    bearer_token: Optional[str] = None
    shop_domain: Optional[str] = None
    hmac: Optional[str] = None
    extra_headers: dict = field(default_factory=dict)

    @property
    def url(self) -> str:
        url = f"{config.backend_base_url()}{self.path}"
        if self.query_string:
            url = f"{url}?{self.query_string}"
        return url

    @property
    def headers(self) -> dict:
        headers = dict(self.extra_headers)
        if self.bearer_token:
            headers["authorization"] = f"Bearer {self.bearer_token}"
        if self.shop_domain:
            headers[SHOP_DOMAIN_HEADER] = self.shop_domain
        if self.hmac:
            headers[HMAC_HEADER] = self.hmac
        if self.body is not None and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
        return headers


def _to_bytes(body) -> Optional[bytes]:
    if body is None:
        return None
    if isinstance(body, str):
        return body.encode()
    return bytes(body)


def build_forwarded_request(
    inbound: InboundRequest,
    target_path: str,
    method: Optional[str] = None,
    body=None,
    shop_access_token: Optional[str] = None,
) -> ForwardedRequest:
    """
    Describe the outbound call for `inbound`.

    `target_path` is relative to the backend base URL and may carry its own
    query string. The inbound bearer token wins over `shop_access_token`.
    """
    resolved_method = (method or inbound.method).upper()

    path, _, query_string = target_path.partition("?")

    if inbound.method in BODYLESS_METHODS or resolved_method in BODYLESS_METHODS:
        resolved_body = None
    elif body is not None:
        resolved_body = _to_bytes(body)
    else:
        resolved_body = inbound.body or None

    extra_headers = {}
    content_type = inbound.headers.get("content-type")
    if resolved_body is not None and body is None and content_type:
        extra_headers["Content-Type"] = content_type

    return ForwardedRequest(
        method=resolved_method,
        path=path,
        query_string=query_string,
        body=resolved_body,
        bearer_token=get_session_token(inbound.headers) or shop_access_token,
        shop_domain=inbound.headers.get(SHOP_DOMAIN_HEADER),
        hmac=inbound.headers.get(HMAC_HEADER),
        extra_headers=extra_headers,
    )


def send_to_backend(forwarded: ForwardedRequest) -> requests.Response:
    url = forwarded.url
    logger.info(f"Forwarding {forwarded.method} {url}")

    try:
        response = requests.request(
            forwarded.method,
            url,
            headers=forwarded.headers,
            data=forwarded.body,
            timeout=config.BACKEND_TIMEOUT_SECONDS,
        )
    except requests.Timeout as e:
        logger.error(f"Backend request timed out: {forwarded.method} {url}: {e}")
        raise GatewayTimeoutError("The backend did not respond in time") from e
    except requests.RequestException as e:
        logger.error(f"Backend request failed: {forwarded.method} {url}: {e}")
        raise UpstreamUnreachableError("Failed to reach the backend") from e

    logger.info(f"Backend responded {response.status_code} for {forwarded.method} {url}")
    if not response.ok:
        logger.warning(f"Backend error body: {response.text[:500]}")

    return response


def forward_to_backend(
    inbound: InboundRequest,
    target_path: str,
    method: Optional[str] = None,
    body=None,
    shop_access_token: Optional[str] = None,
) -> requests.Response:
    forwarded = build_forwarded_request(
        inbound,
        target_path,
        method=method,
        body=body,
        shop_access_token=shop_access_token,
    )
    return send_to_backend(forwarded)


def relay_response(response: requests.Response, headers: Optional[dict] = None) -> Response:
    """Copy status, body and content type of a backend response."""
    relayed_headers = dict(headers or {})
    relayed_headers["Content-Type"] = response.headers.get("Content-Type") or "application/json"
    return Response(content=response.content, status_code=response.status_code, headers=relayed_headers)
