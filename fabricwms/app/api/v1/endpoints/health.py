from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from fabricwms.app.api.deps import get_db
from fabricwms.app.core.config import get_settings
from fabricwms.app.core.logging import get_logger

router = APIRouter()

logger = get_logger(__name__)


@router.get("/health")
def health(db: Session = Depends(get_db)):
    settings = get_settings()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except OperationalError as exc:
        logger.warning("health_db_unavailable", error=str(exc.orig))
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": settings.app_version,
        "database": database,
    }
