import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fee_engine.core.database import Base

# Percent columns: 0.0000 - 100.0000
PERCENT = Numeric(7, 4)


class PaymentMethod(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    PIX = "PIX"

    @property
    def has_installments(self) -> bool:
        return self is PaymentMethod.CREDIT


class FeeSchedule(Base):
    """Named pricing table; assignable to clients."""

    __tablename__ = "fee_schedules"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(2048), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    rates = relationship(
        "FeeRate",
        back_populates="schedule",
        order_by="[FeeRate.payment_method, FeeRate.installment_count]",
        cascade="all, delete-orphan",
    )
    assignments = relationship("ClientFeeAssignment", back_populates="fee_schedule", passive_deletes="all")


class FeeRate(Base):
    """One (payment_method, installment_count) row of a FeeSchedule."""

    __tablename__ = "fee_rates"
    __table_args__ = (
        UniqueConstraint(
            "schedule_id",
            "payment_method",
            "installment_count",
            name="uq_fee_rates_schedule_method_installments",
        ),
        CheckConstraint("installment_count >= 1", name="ck_fee_rates_installment_count_positive"),
        CheckConstraint(
            "final_rate_percent >= 0 AND final_rate_percent <= 100",
            name="ck_fee_rates_final_rate_range",
        ),
    )

    id = Column(String(36), primary_key=True, index=True)
    schedule_id = Column(
        String(36), ForeignKey("fee_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    installment_count = Column(Integer, nullable=False, default=1)
    final_rate_percent = Column(PERCENT, nullable=False)
    root_share_percent = Column(PERCENT, nullable=False)
    forwarding_share_percent = Column(PERCENT, nullable=False)

    schedule = relationship("FeeSchedule", back_populates="rates")

    @property
    def key(self) -> tuple:
        return (PaymentMethod(self.payment_method), self.installment_count)
