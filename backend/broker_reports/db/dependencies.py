"""FastAPI dependencies for database access."""

from collections.abc import Iterator

from sqlalchemy.orm import Session

from broker_reports.db.session import get_session_factory


def get_db() -> Iterator[Session]:
    """Yield a request-scoped session."""

    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
