from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.academia.db import create_db_engine, make_sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///academia.db"


def resolve_database_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """Commit-or-rollback session for one-off scripts (seed, release).

    Uses the same engine settings as the web app, then disposes the pool.
    """
    engine = create_db_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
