from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import relationship

from app.db.base import Base


class Org(Base):
    __tablename__ = "orgs"

    id = Column(String, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    status = Column(String(50), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    facilities = relationship("Facility", back_populates="org", cascade="all, delete-orphan")
