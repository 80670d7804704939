import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from tip_pool.config import settings
from tip_pool.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.database_url),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine = engine) -> None:
    import tip_pool.models  # noqa: F401

    Base.metadata.create_all(bind=bind)


def check_connection(bind: Engine = engine) -> bool:
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("database connection check failed")
        return False
    return True


@contextmanager
def store_call(db: Session, operation: str, **context: Any) -> Iterator[None]:
    """Run a store round trip, turning driver errors into StoreUnavailable."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("store call %s failed %s: %s", operation, context, exc)
        raise StoreUnavailable(operation, str(exc.__class__.__name__), **context) from exc
