import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class Covenant(Base):
    __tablename__ = "covenants"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "threshold_operator IN ('less_than', 'less_than_equal', 'greater_than', 'greater_than_equal')",
            name="ck_covenant_threshold_operator",
        ),
        CheckConstraint(
            "status IS NULL OR status IN ('compliant', 'warning', 'breach')",
            name="ck_covenant_status",
        ),
        Index("ix_covenants_org_facility", "org_id", "facility_id"),
        Index("ix_covenants_org_next_check", "org_id", "next_check_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False)
    facility_id = Column(
        UUID(as_uuid=True),
        ForeignKey("facilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    covenant_type = Column(String(100), nullable=False)
    threshold_operator = Column(String(32), nullable=False)
    threshold_value = Column(Float, nullable=False)
    current_value = Column(Float, nullable=True)
    # NULL until the first check with a usable value
    status = Column(String(32), nullable=True)
    check_frequency = Column(String(32), nullable=False, default="quarterly")
    next_check_date = Column(Date, nullable=True)
    last_checked = Column(DateTime(timezone=True), nullable=True)
    breach_notified = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    facility = relationship("Facility", back_populates="covenants")
