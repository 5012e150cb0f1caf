"""
PayDesk - Payroll Schemas

Pydantic schemas for roster, salary slip and period copy requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional, List, Literal
from uuid import UUID

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator, model_validator

from paydesk.models.payroll import normalize_month, sanitize_text


# ===========================================
# ENUMS AS LITERALS
# ===========================================

EmployeeStatusEnum = Literal["FULL_TIME", "PROBATION", "CONTRACT"]

GenderEnum = Literal["MALE", "FEMALE"]

# English month name, normalised to title case ("january" -> "January")
MonthName = Annotated[str, AfterValidator(normalize_month)]

# Fields an update may change but never clear
REQUIRED_EMPLOYEE_FIELDS = ("name", "national_id", "position", "status", "address", "phone")


def _sanitize_payload(data):
    if isinstance(data, dict):
        return {
            key: sanitize_text(value) if isinstance(value, str) else value
            for key, value in data.items()
        }
    return data


# ===========================================
# EMPLOYEE SCHEMAS
# ===========================================

class EmployeeBase(BaseModel):
    """Base employee schema."""
    name: str = Field(..., min_length=1, max_length=255)
    national_id: str = Field(..., min_length=1, max_length=50)
    position: str = Field(..., min_length=1, max_length=255)
    status: EmployeeStatusEnum
    address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    gender: Optional[GenderEnum] = None
    date_of_birth: Optional[date] = None
    birth_location: Optional[str] = None
    joined_date: Optional[date] = None
    last_education: Optional[str] = None
    religion: Optional[str] = None
    bank: Optional[str] = None
    bank_number: Optional[int] = Field(None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def sanitize_strings(cls, data):
        return _sanitize_payload(data)


class EmployeeCreate(EmployeeBase):
    """Create employee request."""
    pass


class EmployeeUpdate(BaseModel):
    """Update employee request. Only provided fields are changed."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    national_id: Optional[str] = Field(None, min_length=1, max_length=50)
    position: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[EmployeeStatusEnum] = None
    address: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    gender: Optional[GenderEnum] = None
    date_of_birth: Optional[date] = None
    birth_location: Optional[str] = None
    joined_date: Optional[date] = None
    last_education: Optional[str] = None
    religion: Optional[str] = None
    bank: Optional[str] = None
    bank_number: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def sanitize_strings(cls, data):
        return _sanitize_payload(data)

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        for name in REQUIRED_EMPLOYEE_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be empty")
        return self


class EmployeeResponse(BaseModel):
    """Employee response."""
    id: UUID
    account_id: UUID
    name: str
    national_id: str
    position: str
    status: EmployeeStatusEnum
    address: str
    phone: str
    email: Optional[str] = None
    gender: Optional[GenderEnum] = None
    date_of_birth: Optional[date] = None
    birth_location: Optional[str] = None
    joined_date: Optional[date] = None
    last_education: Optional[str] = None
    religion: Optional[str] = None
    bank: Optional[str] = None
    bank_number: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EmployeeListResponse(BaseModel):
    """Paginated employee list."""
    items: List[EmployeeResponse]
    total: int


# ===========================================
# ROSTER IMPORT SCHEMAS
# ===========================================

class RowErrorResponse(BaseModel):
    row: int
    field: Optional[str] = None
    message: str


class ImportResultResponse(BaseModel):
    """Outcome of a roster import (or of its dry run)."""
    dry_run: bool = False
    inserted: int
    updated: int
    unchanged: int
    deleted: int
    skipped_deletions: int
    skipped_national_ids: List[str] = []
    errors: List[RowErrorResponse] = []


# ===========================================
# SALARY SLIP SCHEMAS
# ===========================================

class SalaryComponents(BaseModel):
    """The eight components summed into a slip's total."""
    basic_salary: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    position_allowance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    family_allowance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    child_allowance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    food_allowance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    bonus: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    thr: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    others: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)


class SalarySlipCreate(SalaryComponents):
    """
    Create salary slip request.

    The total is always computed from the components; a total sent by the
    client is ignored.
    """
    employee_id: UUID
    month: str
    year: int = Field(..., ge=1900, le=9999)
    company_name: str = Field(..., min_length=1, max_length=255)
    company_address: Optional[str] = None
    company_logo: Optional[str] = Field(None, max_length=500)
    approved_by: Optional[str] = None
    approved_position: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        return normalize_month(v)


class SalarySlipUpdate(BaseModel):
    """Update salary slip request. Only provided fields are changed."""
    month: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=9999)
    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    company_address: Optional[str] = None
    company_logo: Optional[str] = Field(None, max_length=500)
    approved_by: Optional[str] = None
    approved_position: Optional[str] = None
    notes: Optional[str] = None
    basic_salary: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    position_allowance: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    family_allowance: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    child_allowance: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    food_allowance: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    bonus: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    thr: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    others: Optional[Decimal] = Field(None, ge=0, decimal_places=2)

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return normalize_month(v)


class SalarySlipResponse(SalaryComponents):
    """Salary slip response."""
    id: UUID
    account_id: UUID
    employee_id: UUID
    month: str
    year: int
    company_name: str
    company_address: Optional[str] = None
    company_logo: Optional[str] = None
    approved_by: Optional[str] = None
    approved_position: Optional[str] = None
    notes: Optional[str] = None
    total_salary: Decimal
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ===========================================
# PERIOD COPY SCHEMAS
# ===========================================

class PeriodCopyRequest(BaseModel):
    """Replicate a set of slips into another period."""
    source_slip_ids: List[UUID] = Field(..., min_length=1)
    target_month: str
    target_year: int = Field(..., ge=1900, le=9999)

    @field_validator("target_month")
    @classmethod
    def validate_target_month(cls, v: str) -> str:
        return normalize_month(v)


class PeriodCopyResponse(BaseModel):
    created: int
    skipped: int
    created_ids: List[UUID] = []
    skipped_employee_ids: List[UUID] = []
