from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from fabricwms.app.core.config import get_settings
from fabricwms.app.core.logging import get_logger
from fabricwms.services.exceptions import (
    ConcurrentUpdateError,
    StorageIntegrityError,
    TransientStorageError,
)

logger = get_logger(__name__)

ACTIVE_ENTRY_INDEX = "uq_stock_movements_active_purchase"


def is_active_entry_race(exc: IntegrityError) -> bool:
    """
    Seule violation « concurrente » attendue: deux entrées actives pour un même achat.
    PostgreSQL nomme l'index, SQLite nomme la colonne.
    """
    message = str(exc.orig)
    return (
        ACTIVE_ENTRY_INDEX in message
        or "UNIQUE constraint failed: stock_movements.purchase_record_id" in message
    )


def create_db_engine(url: str) -> Engine:
    settings = get_settings()

    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(
        url,
        connect_args={"timeout": settings.sqlite_busy_timeout_s, "check_same_thread": False},
    )

    # pysqlite: on pilote BEGIN nous-mêmes (SAVEPOINT fiable + verrou d'écriture dès le début)
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = create_db_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def atomic(db: Session, operation: str = "write") -> Iterator[Session]:
    """
    Unité de travail tout-ou-rien.

    - commit si le bloc se termine normalement
    - rollback sur TOUTE erreur (aucun effet partiel)
    - timeouts/verrous -> TransientStorageError (rejouable)
    - 2e entrée active sur un achat -> ConcurrentUpdateError (rejouable)
    - toute autre contrainte -> StorageIntegrityError (non rejouable)
    """
    try:
        if db.get_bind().dialect.name == "postgresql":
            timeout_ms = int(get_settings().db_lock_timeout_ms)
            db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if is_active_entry_race(exc):
            logger.warning("transaction_failed", operation=operation, error=str(exc.orig))
            raise ConcurrentUpdateError(str(exc.orig)) from exc
        logger.error("integrity_violation", operation=operation, error=str(exc.orig))
        raise StorageIntegrityError(operation, str(exc.orig)) from exc
    except OperationalError as exc:
        db.rollback()
        logger.warning("transaction_failed", operation=operation, error=str(exc.orig))
        raise TransientStorageError(operation, str(exc.orig)) from exc
    except Exception:
        db.rollback()
        raise
