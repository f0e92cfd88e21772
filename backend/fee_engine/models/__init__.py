from fee_engine.core.database import Base
from fee_engine.models.back_office_user import BackOfficeUser
from fee_engine.models.fee_schedule import FeeRate, FeeSchedule, PaymentMethod
from fee_engine.models.client_fee_assignment import ClientFeeAssignment

__all__ = [
    "Base",
    "BackOfficeUser",
    "FeeSchedule",
    "FeeRate",
    "PaymentMethod",
    "ClientFeeAssignment",
]
