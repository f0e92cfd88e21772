"""Client to fee schedule assignments.

The table is an append-only log: ``active`` marks the single current row per
client. Reassignment flips the current row off and inserts the new one in the
same transaction, so readers never see zero or two active rows mid-change.
Concurrent writers are detected optimistically: the active row read at the
start of the call must still be active when the change commits.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from fee_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from fee_engine.models.client_fee_assignment import ClientFeeAssignment
from fee_engine.models.fee_schedule import FeeSchedule
from fee_engine.services.fee_schedules import FeeScheduleStore

logger = logging.getLogger(__name__)

# Sentinel: caller did not state which active assignment it expects
UNSET = object()


def _require(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", errors=[{"index": None, "field": field, "message": "required"}])
    return value


class ClientFeeAssignmentManager:
    def __init__(self, db: Session, schedules: Optional[FeeScheduleStore] = None):
        self.db = db
        self.schedules = schedules or FeeScheduleStore(db)

    def get_active_assignment(self, client_id: str) -> Optional[ClientFeeAssignment]:
        return (
            self.db.query(ClientFeeAssignment)
            .options(joinedload(ClientFeeAssignment.fee_schedule).selectinload(FeeSchedule.rates))
            .filter(ClientFeeAssignment.client_id == client_id, ClientFeeAssignment.active.is_(True))
            .first()
        )

    def get_history(self, client_id: str) -> tuple[ClientFeeAssignment, ...]:
        """Every assignment the client ever had, oldest first."""
        rows = (
            self.db.query(ClientFeeAssignment)
            .filter(ClientFeeAssignment.client_id == client_id)
            .order_by(ClientFeeAssignment.assigned_at.asc(), ClientFeeAssignment.active.asc())
            .all()
        )
        return tuple(rows)

    def list_active_assignments(self, schedule_id: Optional[str] = None) -> list[ClientFeeAssignment]:
        query = (
            self.db.query(ClientFeeAssignment)
            .options(joinedload(ClientFeeAssignment.fee_schedule))
            .filter(ClientFeeAssignment.active.is_(True))
        )
        if schedule_id is not None:
            query = query.filter(ClientFeeAssignment.fee_schedule_id == schedule_id)
        return query.order_by(ClientFeeAssignment.client_id).all()

    def assign(
        self,
        client_id: str,
        schedule_id: str,
        assigned_by: str,
        notes: Optional[str] = None,
        expected_assignment_id=UNSET,
    ) -> ClientFeeAssignment:
        """Make ``schedule_id`` the client's active schedule.

        Retrying with the same schedule is a no-op that returns the current row.
        ``expected_assignment_id`` (None meaning "no active assignment") lets a
        caller pin the precondition to what it displayed earlier.
        """
        client_id = _require(client_id, "client_id")
        assigned_by = _require(assigned_by, "assigned_by")
        schedule = self.schedules.get_schedule(schedule_id)

        current = self.get_active_assignment(client_id)
        current_id = current.id if current is not None else None
        if expected_assignment_id is not UNSET and expected_assignment_id != current_id:
            logger.warning(
                "Fee assignment for client %s changed: expected %s, found %s",
                client_id,
                expected_assignment_id,
                current_id,
            )
            raise ConflictError(
                "Client fee assignment changed since it was read",
                client_id=client_id,
                schedule_id=schedule_id,
                expected_assignment_id=expected_assignment_id,
                current_assignment_id=current_id,
            )

        if current is not None and current.fee_schedule_id == schedule.id:
            logger.info("Client %s already assigned to fee schedule %s", client_id, schedule.id)
            return current

        now = datetime.now(timezone.utc)
        row = ClientFeeAssignment(
            id=str(uuid.uuid4()),
            client_id=client_id,
            fee_schedule_id=schedule.id,
            assigned_by=assigned_by,
            assigned_at=now,
            notes=notes or None,
            active=True,
        )
        try:
            if current_id is not None:
                self._deactivate(client_id, current_id, now)
            self.db.add(row)
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Concurrent fee assignment for client %s rejected", client_id)
            raise ConflictError(
                "Another fee assignment for this client was committed first",
                client_id=client_id,
                schedule_id=schedule_id,
            ) from e
        self.db.refresh(row)
        logger.info(
            "Client %s assigned to fee schedule %s by %s (previous assignment %s)",
            client_id,
            schedule.id,
            assigned_by,
            current_id,
        )
        return row

    def transfer(
        self,
        client_id: str,
        from_schedule_id: str,
        to_schedule_id: str,
        assigned_by: str,
        notes: Optional[str] = None,
    ) -> ClientFeeAssignment:
        """Move a client between schedules, only if it is still on ``from_schedule_id``."""
        current = self.get_active_assignment(client_id)
        if current is None or current.fee_schedule_id != from_schedule_id:
            raise ConflictError(
                "Client is not currently assigned to the source fee schedule",
                client_id=client_id,
                schedule_id=from_schedule_id,
                current_schedule_id=current.fee_schedule_id if current is not None else None,
            )
        row = self.assign(
            client_id,
            to_schedule_id,
            assigned_by,
            notes=notes,
            expected_assignment_id=current.id,
        )
        logger.info("Client %s transferred from fee schedule %s to %s", client_id, from_schedule_id, to_schedule_id)
        return row

    def remove(self, client_id: str, removed_by: Optional[str] = None) -> ClientFeeAssignment:
        """Deactivate the client's assignment; the client is unpriced until reassigned."""
        current = self.get_active_assignment(client_id)
        if current is None:
            raise NotFoundError("Client has no active fee assignment", client_id=client_id)
        try:
            self._deactivate(client_id, current.id, datetime.now(timezone.utc))
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        self.db.refresh(current)
        logger.info(
            "Fee assignment %s for client %s removed by %s",
            current.id,
            client_id,
            removed_by or "unknown",
        )
        return current

    def _deactivate(self, client_id: str, assignment_id: str, when: datetime) -> None:
        updated = (
            self.db.query(ClientFeeAssignment)
            .filter(ClientFeeAssignment.id == assignment_id, ClientFeeAssignment.active.is_(True))
            .update(
                {ClientFeeAssignment.active: False, ClientFeeAssignment.deactivated_at: when},
                synchronize_session=False,
            )
        )
        if updated != 1:
            logger.warning("Fee assignment %s for client %s was already replaced", assignment_id, client_id)
            raise ConflictError(
                "Client fee assignment changed since it was read",
                client_id=client_id,
                expected_assignment_id=assignment_id,
            )
