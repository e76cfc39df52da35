from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.halfride.db import make_engine, make_sessionmaker


@contextmanager
def script_session(db_url: str):
    """Commit-on-success session for one-off scripts (airport seed/import)."""
    engine = make_engine(db_url)
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
