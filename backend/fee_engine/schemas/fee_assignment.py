from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from fee_engine.schemas.fee_schedule import FeeScheduleResponse


class FeeAssignmentCreate(BaseModel):
    schedule_id: str
    notes: Optional[str] = None
    # Active assignment id the caller saw (null = none). Omit to skip the check.
    expected_assignment_id: Optional[str] = None


class FeeAssignmentTransfer(BaseModel):
    from_schedule_id: str
    to_schedule_id: str
    notes: Optional[str] = None


class ClientFeeAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    client_id: str
    fee_schedule_id: str
    assigned_by: str
    assigned_at: datetime
    notes: Optional[str] = None
    active: bool
    deactivated_at: Optional[datetime] = None


class ActiveFeeAssignmentResponse(BaseModel):
    client_id: str
    assignment: Optional[ClientFeeAssignmentResponse] = None
    schedule: Optional[FeeScheduleResponse] = None
