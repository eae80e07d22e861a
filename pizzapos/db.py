import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from pizzapos.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def make_engine(url: str, echo: bool = False):
    kwargs = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


engine = make_engine(settings.DB_URL, echo=settings.DB_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Run a block as one unit of work on ``db``.

    The outermost ``atomic`` commits on success and rolls back on any
    exception. Inner ``atomic`` blocks join the outer one, so a service that
    calls other services still commits (or fails) exactly once.
    """
    depth = db.info.get("atomic_depth", 0)
    db.info["atomic_depth"] = depth + 1
    try:
        if depth == 0 and db.get_bind().dialect.name == "postgresql":
            # SET LOCAL only lives until the end of the current transaction
            db.execute(text(f"SET LOCAL statement_timeout = {int(settings.TX_TIMEOUT_SECONDS) * 1000}"))
        yield db
        if depth == 0:
            db.commit()
    except Exception:
        if depth == 0:
            logger.debug("rolling back unit of work")
            db.rollback()
        raise
    finally:
        db.info["atomic_depth"] = depth
