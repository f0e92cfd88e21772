from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from fee_engine.core.database import SessionLocal
from fee_engine.services.fee_assignments import ClientFeeAssignmentManager
from fee_engine.services.fee_resolver import FeeResolver
from fee_engine.services.fee_schedules import FeeScheduleStore


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_schedule_store(db: Session = Depends(get_db)) -> FeeScheduleStore:
    return FeeScheduleStore(db)


def get_assignment_manager(db: Session = Depends(get_db)) -> ClientFeeAssignmentManager:
    return ClientFeeAssignmentManager(db)


def get_fee_resolver(db: Session = Depends(get_db)) -> FeeResolver:
    return FeeResolver(db)
