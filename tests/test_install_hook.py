import hashlib
import hmac
from unittest.mock import patch

import requests

from conftest import SHOP, fake_response
from core.auth import STATE_COOKIE
from models import ShopSession
from services.install_hook import notify_backend_of_install
from services.installation_logs import InstallationLog, InstallationLogStore

GET = "services.install_hook.requests.get"


def test_success_is_recorded():
    logs = InstallationLogStore()

    with patch(GET, return_value=fake_response(200, "provisioned", content_type="text/plain")) as mocked:
        entry = notify_backend_of_install(SHOP, "shpat_abc", logs)

    args, kwargs = mocked.call_args
    assert args == (f"https://backend.test/auth?shop={SHOP}",)
    assert kwargs["headers"]["Authorization"] == "Bearer shpat_abc"
    assert kwargs["headers"]["X-Shopify-Shop-Domain"] == SHOP
    assert entry.status == "success"
    assert entry.backend_response == "provisioned"
    assert logs.get(SHOP) == [entry]


def test_backend_rejection_is_recorded_as_error():
    logs = InstallationLogStore()

    with patch(GET, return_value=fake_response(503, "y" * 500, content_type="text/plain")):
        entry = notify_backend_of_install(SHOP, "shpat_abc", logs)

    assert entry.status == "error"
    assert entry.message == "Backend returned status 503"
    assert len(entry.backend_response) == 200


def test_network_failure_never_raises():
    logs = InstallationLogStore()

    with patch(GET, side_effect=requests.ConnectionError("refused")):
        entry = notify_backend_of_install(SHOP, "shpat_abc", logs)

    assert entry.status == "error"
    assert entry.message.startswith("Failed to send GET")
    assert logs.get(SHOP)[0] is entry


def test_missing_shop_or_token_is_skipped():
    logs = InstallationLogStore()

    with patch(GET) as mocked:
        assert notify_backend_of_install(SHOP, None, logs) is None
        assert notify_backend_of_install(None, "shpat_abc", logs) is None

    mocked.assert_not_called()
    assert logs.get(SHOP) == []


def test_log_store_keeps_last_ten_per_shop():
    logs = InstallationLogStore()
    for i in range(12):
        logs.record(InstallationLog(shop=SHOP, auth_url="u", status="success", message=str(i)))
    logs.record(InstallationLog(shop="other.myshopify.com", auth_url="u", status="error", message="x"))

    messages = [e.message for e in logs.get(SHOP)]
    assert messages == [str(i) for i in range(2, 12)]
    assert len(logs.get("other.myshopify.com")) == 1

    logs.clear(SHOP)
    assert logs.get(SHOP) == []


def _signed_callback_params(**params):
    message = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    params["hmac"] = hmac.new(b"test-api-secret", message.encode(), hashlib.sha256).hexdigest()
    return params


def test_oauth_callback_stores_session_and_runs_hook(client, app, db):
    params = _signed_callback_params(code="auth-code", shop=SHOP, state="state-123", timestamp="1700000000")
    client.cookies.set(STATE_COOKIE, "state-123")

    token_json = {"access_token": "shpat_new", "scope": "read_products", "expires_in": 3600}
    with patch("core.auth.requests.post", return_value=fake_response(200, token_json)), \
            patch(GET, return_value=fake_response(200, "ok", content_type="text/plain")) as hook_get, \
            patch("services.shopify.requests.post", return_value=fake_response(200, {"data": {}})):
        response = client.get("/auth/callback", params=params, follow_redirects=False)

    assert response.status_code in (302, 307)
    assert response.headers["location"] == f"https://{SHOP}/admin/apps/test-api-key"

    session = db.query(ShopSession).filter(ShopSession.shop == SHOP).one()
    assert session.access_token == "shpat_new"
    assert session.is_online is False
    assert session.expires is not None

    hook_get.assert_called_once()
    assert app.state.installation_logs.get(SHOP)[0].status == "success"


def test_oauth_callback_succeeds_when_backend_is_down(client, app):
    params = _signed_callback_params(code="auth-code", shop=SHOP, state="state-123", timestamp="1700000000")
    client.cookies.set(STATE_COOKIE, "state-123")

    with patch("core.auth.requests.post", return_value=fake_response(200, {"access_token": "shpat_new"})), \
            patch(GET, side_effect=requests.ConnectionError("down")), \
            patch("services.shopify.requests.post", side_effect=requests.ConnectionError("down")):
        response = client.get("/auth/callback", params=params, follow_redirects=False)

    assert response.status_code in (302, 307)
    assert app.state.installation_logs.get(SHOP)[0].status == "error"


def test_oauth_callback_rejects_bad_hmac(client):
    params = _signed_callback_params(code="auth-code", shop=SHOP, state="state-123", timestamp="1700000000")
    params["hmac"] = "0" * 64
    client.cookies.set(STATE_COOKIE, "state-123")

    with patch("core.auth.requests.post") as mocked:
        response = client.get("/auth/callback", params=params, follow_redirects=False)

    assert response.status_code == 400
    assert response.json()["message"] == "HMAC validation failed"
    mocked.assert_not_called()


def test_install_redirects_to_authorize(client):
    response = client.get("/auth/install", params={"shop": SHOP}, follow_redirects=False)

    assert response.status_code in (302, 307)
    assert response.headers["location"].startswith(f"https://{SHOP}/admin/oauth/authorize?client_id=test-api-key")


def test_install_rejects_foreign_domains(client):
    response = client.get("/auth/install", params={"shop": "evil.example.com"}, follow_redirects=False)

    assert response.status_code == 400


def test_oauth_callback_survives_non_json_webhook_reply(client, db):
    params = _signed_callback_params(code="auth-code", shop=SHOP, state="state-123", timestamp="1700000000")
    client.cookies.set(STATE_COOKIE, "state-123")

    with patch("core.auth.requests.post", return_value=fake_response(200, {"access_token": "shpat_new"})), \
            patch(GET, return_value=fake_response(200, "ok", content_type="text/plain")), \
            patch("services.shopify.requests.post", return_value=fake_response(200, "<html/>", content_type="text/html")):
        response = client.get("/auth/callback", params=params, follow_redirects=False)

    assert response.status_code in (302, 307)
    assert db.query(ShopSession).filter(ShopSession.shop == SHOP).count() == 1
