from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ThresholdOperator(str, Enum):
    LESS_THAN = "less_than"
    LESS_THAN_EQUAL = "less_than_equal"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUAL = "greater_than_equal"


class CovenantStatus(str, Enum):
    COMPLIANT = "compliant"
    WARNING = "warning"
    BREACH = "breach"


class CheckFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    AD_HOC = "ad_hoc"


class SkipReason(str, Enum):
    NO_CURRENT_VALUE = "no_current_value"
    INVALID_VALUE = "invalid_value"


class NotificationSkipReason(str, Enum):
    OWNER_UNASSIGNED = "owner_unassigned"
    DELIVERY_FAILED = "delivery_failed"


class CovenantBase(BaseModel):
    covenant_type: str = Field(min_length=1, max_length=100)
    threshold_operator: ThresholdOperator
    threshold_value: float = Field(allow_inf_nan=False)
    check_frequency: CheckFrequency = CheckFrequency.QUARTERLY

    @field_validator("covenant_type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        value = v.strip().lower()
        if not value:
            raise ValueError("covenant_type cannot be empty")
        return value


class CovenantCreate(CovenantBase):
    current_value: float | None = Field(default=None, allow_inf_nan=False)
    next_check_date: date | None = None


class CovenantUpdate(BaseModel):
    """Administrative edit of a covenant's terms. Status is only ever set by a check."""

    covenant_type: str | None = Field(default=None, min_length=1, max_length=100)
    threshold_operator: ThresholdOperator | None = None
    threshold_value: float | None = Field(default=None, allow_inf_nan=False)
    check_frequency: CheckFrequency | None = None
    next_check_date: date | None = None

    @field_validator("covenant_type")
    @classmethod
    def normalize_type(cls, v: str | None) -> str | None:
        return v.strip().lower() if isinstance(v, str) else v


class CovenantOut(BaseModel):
    id: UUID
    facility_id: UUID
    covenant_type: str
    threshold_operator: ThresholdOperator
    threshold_value: float
    current_value: float | None = None
    status: CovenantStatus | None = None
    check_frequency: str
    next_check_date: date | None = None
    last_checked: datetime | None = None
    breach_notified: bool = False

    class Config:
        from_attributes = True


class CovenantListResponse(BaseModel):
    items: list[CovenantOut]
    total: int


class CovenantCheckRequest(BaseModel):
    # Explicit null is accepted and reported as a skipped check
    current_value: float | None = Field(...)


class FacilityCheckRequest(BaseModel):
    values: dict[UUID, float | None] = Field(default_factory=dict)


class DueCheckRequest(BaseModel):
    as_of: date | None = None


class CheckedResult(BaseModel):
    outcome: Literal["checked"] = "checked"
    covenant_id: UUID
    covenant_type: str
    previous_status: CovenantStatus | None = None
    new_status: CovenantStatus
    current_value: float
    threshold_value: float
    breach_detected: bool = False
    notification_id: UUID | None = None
    notification_skipped_reason: NotificationSkipReason | None = None


class SkippedResult(BaseModel):
    outcome: Literal["skipped"] = "skipped"
    covenant_id: UUID
    reason: SkipReason


class FailedResult(BaseModel):
    outcome: Literal["failed"] = "failed"
    covenant_id: UUID
    error: str


CovenantCheckResult = Annotated[
    Union[CheckedResult, SkippedResult, FailedResult],
    Field(discriminator="outcome"),
]


class CheckSummary(BaseModel):
    checked: int = 0
    skipped: int = 0
    failed: int = 0
    breaches: int = 0
    new_breaches: int = 0


class CovenantCheckResponse(BaseModel):
    facility_id: UUID | None = None
    results: list[CovenantCheckResult]
    summary: CheckSummary


class BreachSummary(BaseModel):
    facility_id: UUID
    total: int
    compliant: int
    warning: int
    breach: int
    unchecked: int
    breaches: list[CovenantOut] = Field(default_factory=list)
