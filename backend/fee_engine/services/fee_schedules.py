"""Fee schedules and their per-method/per-installment rate rows.

All rate input is checked before anything is written; a rejected request
reports every offending row at once so the back office can fix them together.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from fee_engine.core.config import settings
from fee_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from fee_engine.models.client_fee_assignment import ClientFeeAssignment
from fee_engine.models.fee_schedule import FeeRate, FeeSchedule, PaymentMethod
from fee_engine.schemas.fee_schedule import FeeRateIn

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
# Numeric(7, 4) column scale
RATE_SCALE = Decimal("0.0001")
_PERCENT_FIELDS = ("final_rate_percent", "root_share_percent", "forwarding_share_percent")

RateInput = Union[FeeRateIn, FeeRate, dict]


def _stored(value: Decimal) -> Decimal:
    return value.quantize(RATE_SCALE, rounding=ROUND_HALF_UP)


def _issue(index: Optional[int], message: str, rate: Optional[FeeRateIn] = None, **extra: Any) -> dict:
    out: dict[str, Any] = {"index": index, "message": message}
    if rate is not None:
        out["payment_method"] = rate.payment_method.value
        out["installment_count"] = rate.installment_count
    out.update(extra)
    return out


def _coerce_rates(rates: Iterable[RateInput]) -> tuple[list[tuple[int, FeeRateIn]], list[dict]]:
    """Parse raw rows into FeeRateIn; rows that don't parse become issues."""
    parsed: list[tuple[int, FeeRateIn]] = []
    issues: list[dict] = []
    for index, raw in enumerate(rates):
        if isinstance(raw, FeeRateIn):
            parsed.append((index, raw))
            continue
        try:
            if isinstance(raw, FeeRate):
                parsed.append((index, FeeRateIn.model_validate(raw, from_attributes=True)))
            else:
                parsed.append((index, FeeRateIn.model_validate(raw)))
        except SchemaValidationError as e:
            for err in e.errors():
                field = ".".join(str(p) for p in err.get("loc", ()))
                issues.append(_issue(index, f"{field}: {err.get('msg')}", field=field))
    return parsed, issues


def validate_rates(rates: Iterable[RateInput]) -> list[dict]:
    """Return one issue per problem found in ``rates``; empty when the set is valid."""
    parsed, issues = _coerce_rates(rates)
    tolerance = settings.SHARE_TOLERANCE_PERCENT
    seen: dict[tuple, int] = {}

    for index, rate in parsed:
        method = rate.payment_method
        count = rate.installment_count

        if count < 1:
            issues.append(_issue(index, "installment_count must be a positive integer", rate))
        elif not method.has_installments and count != 1:
            issues.append(_issue(index, f"{method.value} rates must use installment_count 1", rate))
        elif count > settings.MAX_CREDIT_INSTALLMENTS:
            issues.append(
                _issue(
                    index,
                    f"installment_count must not exceed {settings.MAX_CREDIT_INSTALLMENTS}",
                    rate,
                )
            )

        in_range = True
        for field in _PERCENT_FIELDS:
            value: Decimal = getattr(rate, field)
            if not value.is_finite() or value < 0 or value > HUNDRED:
                in_range = False
                issues.append(_issue(index, f"{field} must be between 0 and 100", rate, field=field))

        if in_range:
            final = _stored(rate.final_rate_percent)
            shares = _stored(rate.root_share_percent) + _stored(rate.forwarding_share_percent)
            if abs(shares - final) > tolerance:
                issues.append(
                    _issue(
                        index,
                        f"root_share_percent + forwarding_share_percent ({shares}) "
                        f"must equal final_rate_percent ({final})",
                        rate,
                    )
                )

        key = (method, count)
        if key in seen:
            issues.append(_issue(index, f"duplicate rate (first defined at row {seen[key]})", rate))
        else:
            seen[key] = index

    return issues


def _rows(rates: Iterable[RateInput]) -> list[FeeRateIn]:
    parsed, _ = _coerce_rates(rates)
    return [r for _, r in parsed]


class FeeScheduleStore:
    """Owns FeeSchedule and FeeRate rows."""

    def __init__(self, db: Session):
        self.db = db

    def create_schedule(
        self,
        name: str,
        description: Optional[str] = None,
        rates: Iterable[RateInput] = (),
    ) -> FeeSchedule:
        rates = list(rates)
        issues = self._check(name, rates)
        if issues:
            raise ValidationError(f"Fee schedule rejected: {len(issues)} problem(s)", errors=issues)

        schedule = FeeSchedule(
            id=str(uuid.uuid4()),
            name=name.strip(),
            description=description or None,
        )
        self._apply_rates(schedule, _rows(rates), replace=True)
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        logger.info("Fee schedule %s created (%s, %d rates)", schedule.id, schedule.name, len(schedule.rates))
        return schedule

    def update_schedule(
        self,
        schedule_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        rates: Optional[Iterable[RateInput]] = None,
    ) -> FeeSchedule:
        """Rename/describe a schedule and, when ``rates`` is given, replace its whole rate set."""
        schedule = self.get_schedule(schedule_id)
        rates = list(rates) if rates is not None else None
        issues = self._check(name if name is not None else schedule.name, rates or [])
        if issues:
            raise ValidationError(
                f"Fee schedule update rejected: {len(issues)} problem(s)",
                errors=issues,
                schedule_id=schedule_id,
            )

        if name is not None:
            schedule.name = name.strip()
        if description is not None:
            schedule.description = description or None
        if rates is not None:
            self._apply_rates(schedule, _rows(rates), replace=True)
        schedule.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(schedule)
        logger.info("Fee schedule %s updated", schedule.id)
        return schedule

    def upsert_rates(self, schedule_id: str, rates: Iterable[RateInput]) -> FeeSchedule:
        """Update rows matching (method, installments) and insert the rest; other rows are kept."""
        schedule = self.get_schedule(schedule_id)
        rates = list(rates)
        issues = validate_rates(rates)
        if issues:
            raise ValidationError(
                f"Fee rates rejected: {len(issues)} problem(s)",
                errors=issues,
                schedule_id=schedule_id,
            )
        self._apply_rates(schedule, _rows(rates), replace=False)
        schedule.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(schedule)
        logger.info("Fee schedule %s: %d rate(s) saved", schedule.id, len(rates))
        return schedule

    def delete_schedule(self, schedule_id: str) -> None:
        schedule = self.get_schedule(schedule_id)
        references = (
            self.db.query(ClientFeeAssignment)
            .filter(ClientFeeAssignment.fee_schedule_id == schedule_id)
            .count()
        )
        if references:
            logger.warning("Refusing to delete fee schedule %s: %d assignment(s)", schedule_id, references)
            raise ConflictError(
                "Fee schedule is referenced by client assignments and cannot be deleted",
                schedule_id=schedule_id,
                assignment_count=references,
            )
        self.db.delete(schedule)
        try:
            self.db.commit()
        except IntegrityError as e:
            # An assignment landed between the check and the delete
            self.db.rollback()
            raise ConflictError(
                "Fee schedule is referenced by client assignments and cannot be deleted",
                schedule_id=schedule_id,
            ) from e
        logger.info("Fee schedule %s deleted", schedule_id)

    def get_schedule(self, schedule_id: str) -> FeeSchedule:
        schedule = (
            self.db.query(FeeSchedule)
            .options(selectinload(FeeSchedule.rates))
            .filter(FeeSchedule.id == schedule_id)
            .first()
        )
        if schedule is None:
            raise NotFoundError("Fee schedule not found", schedule_id=schedule_id)
        return schedule

    def list_schedules(self) -> list[FeeSchedule]:
        return (
            self.db.query(FeeSchedule)
            .options(selectinload(FeeSchedule.rates))
            .order_by(FeeSchedule.name)
            .all()
        )

    @staticmethod
    def grouped_rates(schedule: FeeSchedule) -> dict[PaymentMethod, list[FeeRate]]:
        """Rates grouped by method (CREDIT, DEBIT, PIX), ascending by installment_count."""
        grouped: dict[PaymentMethod, list[FeeRate]] = {}
        for method in PaymentMethod:
            rows = [r for r in schedule.rates if PaymentMethod(r.payment_method) is method]
            if rows:
                grouped[method] = sorted(rows, key=lambda r: r.installment_count)
        return grouped

    def _check(self, name: Optional[str], rates: list) -> list[dict]:
        issues = []
        if not (name or "").strip():
            issues.append(_issue(None, "name must not be blank", field="name"))
        issues.extend(validate_rates(rates))
        return issues

    def _apply_rates(self, schedule: FeeSchedule, rates: list[FeeRateIn], replace: bool) -> None:
        # Existing rows are updated in place so the (method, installments) unique
        # constraint never sees an old and a new row for the same key.
        existing = {r.key: r for r in schedule.rates}
        incoming = set()
        for rate in rates:
            key = (rate.payment_method, rate.installment_count)
            incoming.add(key)
            row = existing.get(key)
            if row is None:
                row = FeeRate(
                    id=str(uuid.uuid4()),
                    payment_method=rate.payment_method,
                    installment_count=rate.installment_count,
                )
                schedule.rates.append(row)
            row.final_rate_percent = _stored(rate.final_rate_percent)
            row.root_share_percent = _stored(rate.root_share_percent)
            row.forwarding_share_percent = _stored(rate.forwarding_share_percent)
        if replace:
            for key, row in existing.items():
                if key not in incoming:
                    schedule.rates.remove(row)
