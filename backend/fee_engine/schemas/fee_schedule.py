from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from fee_engine.models.fee_schedule import PaymentMethod


# Range and sum checks live in FeeScheduleStore so every bad row is reported at once.
class FeeRateIn(BaseModel):
    payment_method: PaymentMethod
    installment_count: int = 1
    final_rate_percent: Decimal
    root_share_percent: Decimal
    forwarding_share_percent: Decimal = Decimal("0")


class FeeRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    payment_method: PaymentMethod
    installment_count: int
    final_rate_percent: Decimal
    root_share_percent: Decimal
    forwarding_share_percent: Decimal


class FeeScheduleCreate(BaseModel):
    name: str
    description: Optional[str] = None
    rates: list[FeeRateIn] = []


class FeeScheduleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    rates: Optional[list[FeeRateIn]] = None


class FeeRatesUpsert(BaseModel):
    rates: list[FeeRateIn]


class FeeScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    description: Optional[str] = None
    rates: list[FeeRateResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClientFeeScheduleView(BaseModel):
    """Client-facing view: active schedule rates grouped by payment method."""

    client_id: str
    schedule_id: str
    schedule_name: str
    description: Optional[str] = None
    rates_by_method: dict[PaymentMethod, list[FeeRateResponse]]
