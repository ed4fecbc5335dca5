import json
import os
import time
from datetime import datetime, timedelta, timezone

os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["SHOPIFY_APP_URL"] = "https://app.test"
os.environ["BACKEND_API_URL"] = "https://backend.test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEBUG"] = "false"

import jwt
import pytest
import requests
from fastapi.testclient import TestClient

from db import Base, SessionLocal, engine
from main import create_app
from models import ShopSession

SHOP = "test-shop.myshopify.com"


def make_session_token(shop: str = SHOP, secret: str = "test-api-secret", **claims) -> str:
    now = int(time.time())
    payload = {
        "iss": f"https://{shop}/admin",
        "dest": f"https://{shop}",
        "aud": "test-api-key",
        "sub": "42",
        "exp": now + 60,
        "nbf": now - 5,
        "iat": now - 5,
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def fake_response(status_code: int = 200, body=None, content_type: str = "application/json") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if body is None:
        response._content = b""
    elif isinstance(body, (dict, list)):
        response._content = json.dumps(body).encode()
    elif isinstance(body, str):
        response._content = body.encode()
    else:
        response._content = body
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_session_token()}"}


@pytest.fixture
def add_offline_session(db):
    def _add(shop=SHOP, token="shpat_offline", expires_in=3600, session_id=None, is_online=False):
        expires = None
        if expires_in is not None:
            expires = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        session = ShopSession(
            id=session_id or f"offline_{shop}_{token}",
            shop=shop,
            access_token=token,
            is_online=is_online,
            expires=expires,
        )
        db.add(session)
        db.commit()
        return session

    return _add
