from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def make_engine(db_url: str) -> Engine:
    return create_engine(
        db_url,
        connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {},
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Main DB dependency: one session per request, closed when the request ends.

    Sessions come from the factory `create_app()` built for the app's db url.
    Reads never commit. Mutations go through `transaction()` so the business
    write and its audit record share one commit.
    """

    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        raise RuntimeError("Session factory not configured. Was the app built with create_app()?")

    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a unit of work as one transaction on `db`.

    Commits when the block exits normally; on any exception the whole
    transaction (business write and audit record alike) is rolled back and the
    exception propagates.
    """

    if not db.in_transaction():
        db.begin()
    try:
        yield db
        db.commit()
    except Exception:
        logger.debug("Rolling back transaction")
        db.rollback()
        raise
