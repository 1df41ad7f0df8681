from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

ALLOWED_FACILITY_STATUSES = {"PENDING", "ACTIVE", "AMENDED", "MATURED", "CLOSED"}


class FacilityCreate(BaseModel):
    fund_name: str = Field(min_length=1, max_length=255)
    lender_name: str = Field(min_length=1, max_length=255)
    principal_amount: Decimal = Field(ge=0)
    outstanding_balance: Decimal = Field(default=Decimal("0"), ge=0)
    status: str = "ACTIVE"
    gp_user_id: UUID | None = None
    origination_date: date | None = None
    maturity_date: date | None = None

    @field_validator("fund_name", "lender_name")
    @classmethod
    def non_empty(cls, v: str) -> str:
        value = (v or "").strip()
        if not value:
            raise ValueError("Value cannot be empty")
        return value

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        normalized = v.strip().upper()
        if normalized not in ALLOWED_FACILITY_STATUSES:
            raise ValueError(f"Invalid status. Allowed: {sorted(ALLOWED_FACILITY_STATUSES)}")
        return normalized

    @model_validator(mode="after")
    def maturity_after_origination(self) -> "FacilityCreate":
        if self.origination_date and self.maturity_date and self.maturity_date < self.origination_date:
            raise ValueError("maturity_date cannot be before origination_date")
        return self


class FacilityOwnerUpdate(BaseModel):
    gp_user_id: UUID | None


class FacilityOut(BaseModel):
    id: UUID
    fund_name: str
    lender_name: str
    principal_amount: Decimal
    outstanding_balance: Decimal
    status: str
    gp_user_id: UUID | None = None
    origination_date: date | None = None
    maturity_date: date | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class FacilityListResponse(BaseModel):
    items: list[FacilityOut]
    total: int
