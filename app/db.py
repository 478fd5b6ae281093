from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.errors import ApiError, StorageError
from app.settings import get_settings

logger = logging.getLogger("app.db")


class Base(DeclarativeBase):
    pass


def _engine_connect_args(database_url: str, statement_timeout_ms: int) -> dict[str, Any]:
    if database_url.startswith("postgresql") and statement_timeout_ms > 0:
        return {"options": f"-c statement_timeout={int(statement_timeout_ms)}"}
    return {}


_settings = get_settings()
engine = create_engine(
    _settings.database_url,
    pool_pre_ping=True,
    connect_args=_engine_connect_args(_settings.database_url, _settings.db_statement_timeout_ms),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, *, operation: str) -> Iterator[Session]:
    """Run a unit of work that either commits as a whole or leaves nothing behind.

    Domain errors raised inside the block are re-raised unchanged after the
    rollback. Driver and ORM failures surface as ``StorageError``.
    """
    try:
        yield db
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("transaction_failed", extra={"operation": operation})
        raise StorageError(
            code="STORAGE_ERROR",
            message="Attendance storage is unavailable. No changes were saved.",
        ) from exc
    except Exception:
        db.rollback()
        raise
