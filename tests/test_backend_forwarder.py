from unittest.mock import patch

import pytest
import requests
from starlette.datastructures import Headers

from conftest import fake_response
from core import config
from core.errors import GatewayTimeoutError, UpstreamUnreachableError
from services.backend import InboundRequest, build_forwarded_request, forward_to_backend


def inbound(method="GET", headers=None, body=None, query_string=""):
    return InboundRequest(method=method, headers=Headers(headers=headers or {}), query_string=query_string, body=body)


def test_url_is_backend_base_plus_target_path():
    forwarded = build_forwarded_request(inbound(), "/campaigns?status=active")

    assert forwarded.url == "https://backend.test/campaigns?status=active"
    assert forwarded.path == "/campaigns"
    assert forwarded.query_string == "status=active"


def test_backend_url_without_scheme_gets_https(monkeypatch):
    monkeypatch.setattr(config, "BACKEND_API_URL", "backend.example.com/")

    forwarded = build_forwarded_request(inbound(), "/ping")

    assert forwarded.url == "https://backend.example.com/ping"


def test_inbound_bearer_token_is_forwarded_unchanged():
    forwarded = build_forwarded_request(inbound(headers={"authorization": "Bearer session-jwt"}), "/x")

    assert forwarded.headers["authorization"] == "Bearer session-jwt"


def test_shop_access_token_used_only_when_inbound_has_none():
    without_auth = build_forwarded_request(inbound(), "/x", shop_access_token="shpat_123")
    with_auth = build_forwarded_request(
        inbound(headers={"authorization": "Bearer session-jwt"}), "/x", shop_access_token="shpat_123"
    )

    assert without_auth.headers["authorization"] == "Bearer shpat_123"
    assert with_auth.headers["authorization"] == "Bearer session-jwt"


def test_no_authorization_header_without_any_token():
    forwarded = build_forwarded_request(inbound(), "/x")

    assert "authorization" not in forwarded.headers


def test_shop_domain_and_hmac_headers_are_copied():
    forwarded = build_forwarded_request(
        inbound(headers={"X-Shopify-Shop-Domain": "a.myshopify.com", "X-Shopify-Hmac-Sha256": "sig=="}),
        "/x",
    )

    assert forwarded.headers["x-shopify-shop-domain"] == "a.myshopify.com"
    assert forwarded.headers["x-shopify-hmac-sha256"] == "sig=="


@pytest.mark.parametrize("method", ["GET", "HEAD"])
def test_get_and_head_never_carry_a_body(method):
    forwarded = build_forwarded_request(inbound(method=method, body=b'{"a": 1}'), "/x", body='{"b": 2}')

    assert forwarded.body is None
    assert "Content-Type" not in forwarded.headers


def test_resolved_get_drops_body_of_post():
    forwarded = build_forwarded_request(inbound(method="POST", body=b'{"a": 1}'), "/x", method="GET")

    assert forwarded.method == "GET"
    assert forwarded.body is None


def test_post_forwards_buffered_inbound_body():
    forwarded = build_forwarded_request(inbound(method="POST", body=b'{"a": 1}'), "/x")

    assert forwarded.method == "POST"
    assert forwarded.body == b'{"a": 1}'
    assert forwarded.headers["Content-Type"] == "application/json"


def test_explicit_body_overrides_inbound_body():
    forwarded = build_forwarded_request(inbound(method="PUT", body=b"old"), "/x", body='{"new": true}')

    assert forwarded.body == b'{"new": true}'


def test_inbound_content_type_is_kept_for_relayed_body():
    forwarded = build_forwarded_request(
        inbound(method="POST", headers={"content-type": "text/plain"}, body=b"hello"), "/x"
    )

    assert forwarded.headers["Content-Type"] == "text/plain"


def test_inbound_snapshot_is_not_mutated():
    request = inbound(method="POST", headers={"authorization": "Bearer t"}, body=b"{}")

    build_forwarded_request(request, "/x", method="DELETE", body="{}", shop_access_token="shpat")

    assert request.method == "POST"
    assert request.body == b"{}"


def test_forward_issues_one_request_and_returns_raw_response():
    backend_response = fake_response(418, {"teapot": True})

    with patch("services.backend.requests.request", return_value=backend_response) as mocked:
        response = forward_to_backend(
            inbound(method="POST", headers={"authorization": "Bearer t"}, body=b'{"a": 1}'), "/things"
        )

    assert response is backend_response
    mocked.assert_called_once()
    args, kwargs = mocked.call_args
    assert args == ("POST", "https://backend.test/things")
    assert kwargs["data"] == b'{"a": 1}'
    assert kwargs["headers"]["authorization"] == "Bearer t"
    assert kwargs["timeout"] == config.BACKEND_TIMEOUT_SECONDS


def test_same_request_twice_makes_two_identical_calls():
    request = inbound(headers={"authorization": "Bearer t", "x-shopify-shop-domain": "a.myshopify.com"})

    with patch("services.backend.requests.request", return_value=fake_response(200, {})) as mocked:
        forward_to_backend(request, "/offers?x=1")
        forward_to_backend(request, "/offers?x=1")

    assert mocked.call_count == 2
    first, second = mocked.call_args_list
    assert first.args == second.args
    assert first.kwargs["headers"] == second.kwargs["headers"]


def test_timeout_becomes_gateway_timeout():
    with patch("services.backend.requests.request", side_effect=requests.ReadTimeout("slow")):
        with pytest.raises(GatewayTimeoutError):
            forward_to_backend(inbound(), "/x")


def test_network_error_becomes_upstream_unreachable():
    with patch("services.backend.requests.request", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(UpstreamUnreachableError):
            forward_to_backend(inbound(), "/x")
