from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from models import ShopSession


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands timezone-aware columns back naive
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def find_offline_session(db: Session, shop: str, now: Optional[datetime] = None) -> Optional[ShopSession]:
    """
    Canonical offline session for `shop`.

    The unexpired session with the latest expiry wins; a session without an
    expiry never expires. When every session has expired, the most recently
    expiring one is still returned.
    """
    now = now or datetime.now(timezone.utc)

    sessions = (
        db.query(ShopSession)
        .filter(ShopSession.shop == shop)
        .filter(ShopSession.is_online.is_(False))
        .filter(ShopSession.access_token.isnot(None))
        .all()
    )
    if not sessions:
        return None

    never_expiring = [s for s in sessions if s.expires is None]
    if never_expiring:
        return never_expiring[0]

    sessions.sort(key=lambda s: _as_utc(s.expires), reverse=True)
    unexpired = [s for s in sessions if _as_utc(s.expires) > now]
    return unexpired[0] if unexpired else sessions[0]


def find_offline_access_token(db: Session, shop: str) -> Optional[str]:
    session = find_offline_session(db, shop)
    return session.access_token if session else None


def store_offline_session(db: Session, shop: str, token_data: dict) -> ShopSession:
    """Upsert the offline session written by the OAuth callback."""
    now = datetime.now(timezone.utc)
    session_id = ShopSession.offline_id(shop)

    session = db.query(ShopSession).filter(ShopSession.id == session_id).first()
    if not session:
        session = ShopSession(id=session_id, shop=shop, is_online=False)
        db.add(session)

    session.access_token = token_data["access_token"]
    session.scope = token_data.get("scope")
    session.refresh_token = token_data.get("refresh_token")
    session.expires = now + timedelta(seconds=token_data["expires_in"]) if token_data.get("expires_in") else None
    session.refresh_token_expires = (
        now + timedelta(seconds=token_data["refresh_token_expires_in"])
        if token_data.get("refresh_token_expires_in")
        else None
    )

    db.commit()
    return session


def delete_shop_sessions(db: Session, shop: str) -> int:
    deleted = db.query(ShopSession).filter(ShopSession.shop == shop).delete()
    db.commit()
    return deleted
