from fastapi import APIRouter, Depends, Query

from fee_engine.core.auth import get_current_staff
from fee_engine.core.deps import get_assignment_manager, get_fee_resolver, get_schedule_store
from fee_engine.core.exceptions import UnconfiguredPricingError, ValidationError
from fee_engine.models.back_office_user import BackOfficeUser
from fee_engine.schemas.fee_assignment import (
    ActiveFeeAssignmentResponse,
    ClientFeeAssignmentResponse,
    FeeAssignmentCreate,
    FeeAssignmentTransfer,
)
from fee_engine.schemas.fee_quote import FeeBreakdownResponse, FeeQuoteRequest, FeeQuoteResponse
from fee_engine.schemas.fee_schedule import ClientFeeScheduleView, FeeRateResponse, FeeScheduleResponse
from fee_engine.services.fee_assignments import UNSET, ClientFeeAssignmentManager
from fee_engine.services.fee_resolver import FeeResolver, format_breakdown
from fee_engine.services.fee_schedules import FeeScheduleStore

router = APIRouter()


# --- Back-office assignment manager ---


@router.get("/{client_id}/fee-assignment", response_model=ActiveFeeAssignmentResponse)
def get_client_fee_assignment(
    client_id: str,
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    """Current active schedule and its assignment metadata; both null when unconfigured."""
    current = assignments.get_active_assignment(client_id)
    if current is None:
        return ActiveFeeAssignmentResponse(client_id=client_id)
    return ActiveFeeAssignmentResponse(
        client_id=client_id,
        assignment=ClientFeeAssignmentResponse.model_validate(current),
        schedule=FeeScheduleResponse.model_validate(current.fee_schedule),
    )


@router.put("/{client_id}/fee-assignment", response_model=ClientFeeAssignmentResponse)
def assign_client_fee_schedule(
    client_id: str,
    body: FeeAssignmentCreate,
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    expected = body.expected_assignment_id if "expected_assignment_id" in body.model_fields_set else UNSET
    return assignments.assign(
        client_id,
        body.schedule_id,
        assigned_by=staff.username,
        notes=body.notes,
        expected_assignment_id=expected,
    )


@router.post("/{client_id}/fee-assignment/transfer", response_model=ClientFeeAssignmentResponse)
def transfer_client_fee_schedule(
    client_id: str,
    body: FeeAssignmentTransfer,
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    return assignments.transfer(
        client_id,
        body.from_schedule_id,
        body.to_schedule_id,
        assigned_by=staff.username,
        notes=body.notes,
    )


@router.delete("/{client_id}/fee-assignment", response_model=ClientFeeAssignmentResponse)
def remove_client_fee_schedule(
    client_id: str,
    confirm: bool = Query(False),
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    """Leaves the client with no pricing until reassigned, so it must be confirmed."""
    if not confirm:
        raise ValidationError(
            "Removing a fee assignment leaves the client unpriced; repeat with confirm=true",
            errors=[{"index": None, "field": "confirm", "message": "must be true"}],
            client_id=client_id,
        )
    return assignments.remove(client_id, removed_by=staff.username)


@router.get("/{client_id}/fee-assignment/history", response_model=list[ClientFeeAssignmentResponse])
def get_client_fee_assignment_history(
    client_id: str,
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    staff: BackOfficeUser = Depends(get_current_staff),
):
    return list(assignments.get_history(client_id))


# --- Client-facing schedule viewer and calculator ---


@router.get("/{client_id}/fee-schedule", response_model=ClientFeeScheduleView)
def view_client_fee_schedule(
    client_id: str,
    assignments: ClientFeeAssignmentManager = Depends(get_assignment_manager),
    store: FeeScheduleStore = Depends(get_schedule_store),
):
    current = assignments.get_active_assignment(client_id)
    if current is None:
        raise UnconfiguredPricingError("No pricing configured for this client", client_id=client_id)
    schedule = current.fee_schedule
    return ClientFeeScheduleView(
        client_id=client_id,
        schedule_id=schedule.id,
        schedule_name=schedule.name,
        description=schedule.description,
        rates_by_method={
            method: [FeeRateResponse.model_validate(r) for r in rows]
            for method, rows in store.grouped_rates(schedule).items()
        },
    )


@router.post("/{client_id}/fee-quote", response_model=FeeQuoteResponse)
def quote_client_fee(
    client_id: str,
    body: FeeQuoteRequest,
    resolver: FeeResolver = Depends(get_fee_resolver),
):
    """Fee breakdown for one transaction; 409 UNCONFIGURED_PRICING when the client has no schedule."""
    breakdown = resolver.resolve(client_id, body.payment_method, body.installments, body.amount)
    return FeeQuoteResponse(
        breakdown=FeeBreakdownResponse.model_validate(breakdown),
        formatted=format_breakdown(breakdown),
    )
