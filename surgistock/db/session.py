"""SQLAlchemy engine and session factory."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import get_settings


def build_engine(url: str):
    """Create an engine; in-memory SQLite shares one connection across sessions."""

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


engine = build_engine(get_settings().DB_URL)
# ``SessionLocal`` builds a fresh session per unit of work.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
# ``Base`` is the parent class for every model in surgistock/models.
Base = declarative_base()


def init_db(bind=None) -> None:
    """Create tables for every registered model."""

    from ..models import inventory, reference, transaction  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Yield a session and guarantee cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
