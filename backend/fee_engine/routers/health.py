import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fee_engine.core.deps import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


def _database_reachable(db: Session) -> bool:
    try:
        return db.scalar(text("SELECT 1")) == 1
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        return False


@router.get("")
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the fee database."""
    reachable = _database_reachable(db)
    return {
        "service": "fee-engine",
        "status": "ok" if reachable else "degraded",
        "database": "connected" if reachable else "disconnected",
    }
