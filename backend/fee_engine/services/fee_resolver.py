"""Transaction fee resolution.

Fallback policy for a missing installment tier (``RATE_FALLBACK_POLICY``):

* ``nearest_lower`` (default): use the rate of the same payment method with the
  highest installment_count below the requested one. A request below every
  configured tier has no eligible rate.
* ``strict``: only an exact (method, installments) match is accepted.

Either way, a request with no eligible rate raises RateNotFoundError, and a
client without an active schedule raises UnconfiguredPricingError. No default
rate is ever assumed.

Amounts are computed at full Decimal precision and rounded (half-up, 2
places) only when the FeeBreakdown is built.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy.orm import Session

from fee_engine.core.config import settings
from fee_engine.core.exceptions import (
    DataIntegrityError,
    RateNotFoundError,
    UnconfiguredPricingError,
    ValidationError,
)
from fee_engine.models.fee_schedule import FeeRate, FeeSchedule, PaymentMethod
from fee_engine.services.fee_assignments import ClientFeeAssignmentManager

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
CENT = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class FeeBreakdown:
    client_id: str
    payment_method: PaymentMethod
    requested_installments: int
    applied_installments: int
    gross_amount: Decimal
    total_fee: Decimal
    root_fee: Decimal
    forwarding_fee: Decimal
    net_amount: Decimal
    final_rate_percent: Decimal
    root_share_percent: Decimal
    forwarding_share_percent: Decimal
    schedule_id: str
    schedule_name: str


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_brl(value: Decimal) -> str:
    """1234.5 -> 'R$ 1.234,50'"""
    amount = _money(Decimal(value))
    text = f"{abs(amount):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-R$ {text}" if amount < 0 else f"R$ {text}"


def format_breakdown(breakdown: FeeBreakdown) -> dict[str, str]:
    """Display strings for the calculator surface."""
    return {
        "gross_amount": format_brl(breakdown.gross_amount),
        "total_fee": format_brl(breakdown.total_fee),
        "root_fee": format_brl(breakdown.root_fee),
        "forwarding_fee": format_brl(breakdown.forwarding_fee),
        "net_amount": format_brl(breakdown.net_amount),
        "final_rate_percent": f"{_money(breakdown.final_rate_percent)}%".replace(".", ","),
    }


def _coerce_method(payment_method) -> PaymentMethod:
    try:
        return PaymentMethod(payment_method)
    except ValueError:
        raise ValidationError(
            f"Unknown payment method {payment_method!r}",
            errors=[{"index": None, "field": "payment_method", "message": "must be CREDIT, DEBIT or PIX"}],
            payment_method=str(payment_method),
        ) from None


def _coerce_amount(gross_amount: Amount) -> Decimal:
    try:
        amount = gross_amount if isinstance(gross_amount, Decimal) else Decimal(str(gross_amount))
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite() or amount <= 0:
        raise ValidationError(
            "gross_amount must be a finite amount greater than 0",
            errors=[{"index": None, "field": "gross_amount", "message": "must be > 0"}],
            gross_amount=str(gross_amount),
        )
    return amount


class FeeResolver:
    """Stateless: holds only collaborators, never per-call data."""

    def __init__(
        self,
        db: Session,
        assignments: Optional[ClientFeeAssignmentManager] = None,
        fallback_policy: Optional[str] = None,
    ):
        self.assignments = assignments or ClientFeeAssignmentManager(db)
        self.fallback_policy = fallback_policy or settings.RATE_FALLBACK_POLICY

    def has_pricing(self, client_id: str) -> bool:
        return self.assignments.get_active_assignment(client_id) is not None

    def resolve(
        self,
        client_id: str,
        payment_method,
        installments: int,
        gross_amount: Amount,
    ) -> FeeBreakdown:
        method = _coerce_method(payment_method)
        if isinstance(installments, bool) or not isinstance(installments, int) or installments < 1:
            raise ValidationError(
                "installments must be a positive integer",
                errors=[{"index": None, "field": "installments", "message": "must be >= 1"}],
                client_id=client_id,
                payment_method=method,
                installments=installments,
            )
        gross = _coerce_amount(gross_amount)

        assignment = self.assignments.get_active_assignment(client_id)
        if assignment is None:
            raise UnconfiguredPricingError(
                "No pricing configured for this client",
                client_id=client_id,
                payment_method=method,
                installments=installments,
            )
        schedule = assignment.fee_schedule

        # DEBIT and PIX are never installment-based
        target = installments if method.has_installments else 1
        rate = self._select_rate(schedule, method, installments, target, client_id)
        return self._compute(client_id, method, installments, gross, schedule, rate)

    def _select_rate(
        self,
        schedule: FeeSchedule,
        method: PaymentMethod,
        requested: int,
        target: int,
        client_id: str,
    ) -> FeeRate:
        candidates = [r for r in schedule.rates if PaymentMethod(r.payment_method) is method]
        for rate in candidates:
            if rate.installment_count == target:
                return rate

        if self.fallback_policy == "nearest_lower":
            lower = [r for r in candidates if r.installment_count < target]
            if lower:
                rate = max(lower, key=lambda r: r.installment_count)
                logger.warning(
                    "No %s/%s rate in fee schedule %s; using %s/%s tier for client %s",
                    method.value,
                    target,
                    schedule.id,
                    method.value,
                    rate.installment_count,
                    client_id,
                )
                return rate

        raise RateNotFoundError(
            "No applicable rate for this payment method and installment count",
            client_id=client_id,
            payment_method=method,
            installments=requested,
            lookup_installments=target,
            schedule_id=schedule.id,
            fallback_policy=self.fallback_policy,
        )

    def _compute(
        self,
        client_id: str,
        method: PaymentMethod,
        requested: int,
        gross: Decimal,
        schedule: FeeSchedule,
        rate: FeeRate,
    ) -> FeeBreakdown:
        final = Decimal(rate.final_rate_percent)
        root = Decimal(rate.root_share_percent)
        forwarding = Decimal(rate.forwarding_share_percent)

        total_fee = gross * final / HUNDRED
        root_fee = gross * root / HUNDRED
        forwarding_fee = gross * forwarding / HUNDRED

        if abs(root_fee + forwarding_fee - total_fee) > CENT:
            logger.error(
                "Fee schedule %s %s/%s shares %s + %s don't match final rate %s",
                schedule.id,
                method.value,
                rate.installment_count,
                root,
                forwarding,
                final,
            )
            raise DataIntegrityError(
                "Stored rate shares don't reconcile with the final rate",
                client_id=client_id,
                payment_method=method,
                installments=rate.installment_count,
                schedule_id=schedule.id,
                final_rate_percent=final,
                root_share_percent=root,
                forwarding_share_percent=forwarding,
            )

        gross_out = _money(gross)
        total_out = _money(total_fee)
        root_out = _money(root_fee)
        return FeeBreakdown(
            client_id=client_id,
            payment_method=method,
            requested_installments=requested,
            applied_installments=rate.installment_count,
            gross_amount=gross_out,
            total_fee=total_out,
            root_fee=root_out,
            # From the rounded parts so root + forwarding == total and
            # net + total == gross exactly
            forwarding_fee=total_out - root_out,
            net_amount=gross_out - total_out,
            final_rate_percent=final,
            root_share_percent=root,
            forwarding_share_percent=forwarding,
            schedule_id=schedule.id,
            schedule_name=schedule.name,
        )
