from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import DATABASE_URL


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True, "pool_recycle": 1800}

    options = {"connect_args": {"check_same_thread": False}}
    # in-memory sqlite must share one connection across threads
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def init_db() -> None:
    import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)
