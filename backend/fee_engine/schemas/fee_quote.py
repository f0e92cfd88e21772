from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from fee_engine.models.fee_schedule import PaymentMethod


class FeeQuoteRequest(BaseModel):
    payment_method: PaymentMethod
    installments: int = 1
    amount: Decimal


class FeeBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
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


class FeeQuoteResponse(BaseModel):
    breakdown: FeeBreakdownResponse
    formatted: dict[str, str]
