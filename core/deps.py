from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from core.errors import MissingTokenError
from core.session_token import verify_shopify_session_token
from db import SessionLocal
from services.installation_logs import InstallationLogStore
from services.session_store import find_offline_session
from services.shopify import AdminClient


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_installation_logs(request: Request) -> InstallationLogStore:
    return request.app.state.installation_logs


def get_admin_client(
    shop_domain: str = Depends(verify_shopify_session_token),
    db: Session = Depends(get_db),
) -> AdminClient:
    """Admin API client for the shop named in the session token's `dest` claim."""
    session = find_offline_session(db, shop_domain)
    if not session or not session.access_token:
        raise MissingTokenError(f"No offline access token stored for {shop_domain}")
    return AdminClient(shop_domain, session.access_token)
