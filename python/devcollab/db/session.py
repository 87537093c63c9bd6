"""Database sessions and transactions.

HTTP handlers receive one session per request through get_db(). Everything
that runs outside a request opens its own with session_scope():
- realtime event handlers (one session per threadpool call)
- the auth bootstrap callback
- scripts

Mutations are wrapped in transaction(), which commits or rolls back as a unit.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from devcollab.db.engine import get_engine

_session_factory: sessionmaker[Session] | None = None


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Build a session factory for an engine (the process engine by default).

    Objects stay usable after commit: services return schemas built from rows
    they just wrote.
    """
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def get_session_factory() -> sessionmaker[Session]:
    """The process-wide session factory, created on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def set_session_factory(factory: sessionmaker[Session] | None) -> None:
    """Rebind the process-wide factory. None resets it to lazy creation."""
    global _session_factory
    _session_factory = factory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """A session that is closed on exit. Does not commit."""
    db = (factory or get_session_factory())()
    try:
        yield db
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request."""
    with session_scope() as db:
        yield db


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit the session's work on exit, or roll it back if the block raises.

    Usage:
        with transaction(db):
            db.execute(...)
            db.add(...)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
