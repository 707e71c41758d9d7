"""Engine and session factory for the configured database."""

from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from broker_reports.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Create the process-wide engine on first use."""

    settings = get_settings()
    connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
    return create_engine(settings.database_url, future=True, pool_pre_ping=True, connect_args=connect_args)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Return the shared session factory bound to the configured engine."""

    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True)
