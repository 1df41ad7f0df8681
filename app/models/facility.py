import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class Facility(Base):
    __tablename__ = "facilities"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("principal_amount >= 0", name="ck_facility_principal_nonneg"),
        CheckConstraint("outstanding_balance >= 0", name="ck_facility_outstanding_nonneg"),
        Index("ix_facilities_org_owner", "org_id", "gp_user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, ForeignKey("orgs.id", ondelete="CASCADE"), nullable=False, index=True)
    fund_name = Column(String(255), nullable=False)
    lender_name = Column(String(255), nullable=False)
    principal_amount = Column(Numeric(18, 2), nullable=False)
    outstanding_balance = Column(Numeric(18, 2), nullable=False, default=0)
    status = Column(String(50), nullable=False, default="ACTIVE")
    gp_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    origination_date = Column(Date, nullable=True)
    maturity_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    org = relationship("Org", back_populates="facilities")
    gp_user = relationship("User", back_populates="owned_facilities", foreign_keys=[gp_user_id])
    covenants = relationship(
        "Covenant",
        back_populates="facility",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
