from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import relationship

from fee_engine.core.database import Base


class ClientFeeAssignment(Base):
    """Links a client to a FeeSchedule.

    Rows are append-only: reassignment flips the previous row to inactive and
    inserts a new one, so the table doubles as the assignment audit trail.
    """

    __tablename__ = "client_fee_assignments"
    __table_args__ = (
        # At most one active row per client
        Index(
            "uq_client_fee_assignments_one_active",
            "client_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )

    id = Column(String(36), primary_key=True, index=True)
    client_id = Column(String(64), nullable=False, index=True)  # external client record
    fee_schedule_id = Column(
        String(36), ForeignKey("fee_schedules.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    assigned_by = Column(String(255), nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    fee_schedule = relationship("FeeSchedule", back_populates="assignments")
