from fastapi import APIRouter, Depends

from fee_engine.core.auth import get_current_staff
from fee_engine.core.deps import get_assignment_manager, get_schedule_store
from fee_engine.models.back_office_user import BackOfficeUser
from fee_engine.schemas.fee_assignment import ClientFeeAssignmentResponse
from fee_engine.schemas.fee_schedule import (
    FeeRatesUpsert,
    FeeScheduleCreate,
    FeeScheduleResponse,
    FeeScheduleUpdate,
)
from fee_engine.services.fee_assignments import ClientFeeAssignmentManager
from fee_engine.services.fee_schedules import FeeScheduleStore

router = APIRouter()


@router.get("", response_model=list[FeeScheduleResponse])
def list_fee_schedules(
    store: FeeScheduleStore = Depends(get_schedule_store),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    """All fee schedules, by name (assignment picker)."""
    return store.list_schedules()


@router.post("", response_model=FeeScheduleResponse, status_code=201)
def create_fee_schedule(
    body: FeeScheduleCreate,
    store: FeeScheduleStore = Depends(get_schedule_store),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    return store.create_schedule(body.name, body.description, body.rates)


@router.get("/{schedule_id}", response_model=FeeScheduleResponse)
def get_fee_schedule(
    schedule_id: str,
    store: FeeScheduleStore = Depends(get_schedule_store),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    return store.get_schedule(schedule_id)


@router.patch("/{schedule_id}", response_model=FeeScheduleResponse)
def update_fee_schedule(
    schedule_id: str,
    body: FeeScheduleUpdate,
    store: FeeScheduleStore = Depends(get_schedule_store),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    """Rename/describe a schedule; ``rates``, when sent, replaces the whole rate set."""
    return store.update_schedule(schedule_id, name=body.name, description=body.description, rates=body.rates)


@router.put("/{schedule_id}/rates", response_model=FeeScheduleResponse)
def upsert_fee_rates(
    schedule_id: str,
    body: FeeRatesUpsert,
    store: FeeScheduleStore = Depends(get_schedule_store),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    """Save rates by (method, installments); rows not sent are left untouched."""
    return store.upsert_rates(schedule_id, body.rates)


@router.delete("/{schedule_id}")
def delete_fee_schedule(
    schedule_id: str,
    store: FeeScheduleStore = Depends(get_schedule_store),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    store.delete_schedule(schedule_id)
    return {"ok": True, "message": "Fee schedule deleted"}


@router.get("/{schedule_id}/clients", response_model=list[ClientFeeAssignmentResponse])
def list_linked_clients(
    schedule_id: str,
    store: FeeScheduleStore = Depends(get_schedule_store),
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    """Clients whose active schedule is this one."""
    store.get_schedule(schedule_id)
    return assignments.list_active_assignments(schedule_id)
