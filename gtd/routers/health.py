import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gtd.core.database import get_db
from gtd.services.scheduler import task_scheduler

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/z")
def healthz(db: Session = Depends(get_db)):
    # Check si l'API et la base répondent
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unreachable: {e}")
        database = "error"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "scheduler": "running" if task_scheduler.running else "stopped"
    }
