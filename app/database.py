# app/database.py - Database Configuration
import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings
from app.exceptions import StoreUnavailableException

logger = logging.getLogger(__name__)

# Database URL loaded from .env via app/config.py
DATABASE_URL = settings.DATABASE_URL


def _create_engine(url: str):
    if str(url).startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = _create_engine(DATABASE_URL)

# Session maker
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


# Dependency to get database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


T = TypeVar("T")


def with_store_retry(db: Session, op_name: str, func: Callable[[], T]) -> T:
    """
    Run one unit of work against the store, retrying once on a transient failure.

    ``func`` is expected to commit its own transaction. Any exception rolls the
    session back so no half-written state survives; a second ``OperationalError``
    is surfaced as ``StoreUnavailableException``.
    """
    try:
        return func()
    except OperationalError as exc:
        db.rollback()
        delay = settings.STORE_RETRY_BACKOFF_SECONDS
        logger.warning(
            "Transient store failure during %s, retrying in %.2fs: %s",
            op_name,
            delay,
            exc,
        )
        time.sleep(delay)
    except Exception:
        db.rollback()
        raise

    try:
        return func()
    except OperationalError as exc:
        db.rollback()
        logger.error("Store unavailable during %s after retry: %s", op_name, exc)
        raise StoreUnavailableException(
            f"Session store unavailable during {op_name}",
            details={"operation": op_name},
        ) from exc
    except Exception:
        db.rollback()
        raise
