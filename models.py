from sqlalchemy import Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.sql import func
from db import Base


class ShopSession(Base):
    __tablename__ = "sessions"

    id = Column(String, primary_key=True)
    shop = Column(String, nullable=False)
    access_token = Column(Text, nullable=True)
    is_online = Column(Boolean, default=False, nullable=False)
    expires = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String, nullable=True)
    refresh_token = Column(Text, nullable=True)
    refresh_token_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_sessions_shop_online", "shop", "is_online"),)

    @staticmethod
    def offline_id(shop: str) -> str:
        return f"offline_{shop}"
