"""
PayDesk - Payroll Models

Roster and period-scoped salary slips:
- Employee: keyed within an account by the national (government) ID
- SalarySlip: one slip per employee per (month, year) period

The slip total is always the sum of the eight salary components.
It is recomputed before every insert and update, never taken from input.
"""

import re
import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    BigInteger, Boolean, Date, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint, event
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paydesk.models.base import BaseModel

if TYPE_CHECKING:
    from paydesk.models.account import Account


# ===========================================
# ENUMS & CONSTANTS
# ===========================================

class EmployeeStatus(str, Enum):
    """Employment status on the roster."""
    FULL_TIME = "FULL_TIME"
    PROBATION = "PROBATION"
    CONTRACT = "CONTRACT"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

SALARY_COMPONENTS = (
    "basic_salary",
    "position_allowance",
    "family_allowance",
    "child_allowance",
    "food_allowance",
    "bonus",
    "thr",
    "others",
)

# Copied verbatim when a slip is replicated into another period
SLIP_HEADER_FIELDS = (
    "company_name",
    "company_address",
    "company_logo",
    "approved_by",
    "approved_position",
    "notes",
)


def normalize_month(value: str) -> str:
    """Return the canonical English month name, or raise ValueError."""
    candidate = (value or "").strip().title()
    if candidate not in MONTH_NAMES:
        raise ValueError(f"Unknown month: {value!r}")
    return candidate


def month_number(month: str) -> int:
    return MONTH_NAMES.index(normalize_month(month)) + 1


# C0/C1 control characters other than tab and newline
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Drop control characters and surrounding whitespace; empty becomes None.

    Applied to every roster string on both write paths (CSV import and the
    API), so an exported roster reads back unchanged.
    """
    if value is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", str(value)).strip()
    return cleaned or None


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_salary_total(source) -> Decimal:
    """
    Sum the eight salary components of a slip or a mapping.
    Missing components count as zero.
    """
    if isinstance(source, dict):
        values = [source.get(name) for name in SALARY_COMPONENTS]
    else:
        values = [getattr(source, name, None) for name in SALARY_COMPONENTS]
    return sum((_as_decimal(v) for v in values), Decimal("0"))


# ===========================================
# EMPLOYEE
# ===========================================

class Employee(BaseModel):
    """
    Employee on an account's roster.

    The national ID is the natural key used when an uploaded roster is
    reconciled against the persisted one.
    """

    __tablename__ = "employees"

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identification
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    national_id: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Government-issued identification number",
    )
    position: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[EmployeeStatus] = mapped_column(
        SQLEnum(EmployeeStatus, name="employee_status"),
        nullable=False,
    )

    # Contact
    address: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Personal
    gender: Mapped[Optional[Gender]] = mapped_column(
        SQLEnum(Gender, name="gender"), nullable=True,
    )
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    birth_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    joined_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_education: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    religion: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Bank
    bank: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_number: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    account: Mapped["Account"] = relationship("Account", back_populates="employees")
    salary_slips: Mapped[List["SalarySlip"]] = relationship(
        "SalarySlip",
        back_populates="employee",
        passive_deletes="all",
    )

    __table_args__ = (
        UniqueConstraint("account_id", "national_id", name="uq_employee_account_national_id"),
    )

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, national_id={self.national_id}, name={self.name})>"


# ===========================================
# SALARY SLIP
# ===========================================

class SalarySlip(BaseModel):
    """
    Salary slip for one employee in one (month, year) period.
    """

    __tablename__ = "salary_slips"

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Period
    month: Mapped[str] = mapped_column(String(20), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Company block
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_logo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Components
    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    position_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    family_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    child_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    food_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    bonus: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    thr: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
        comment="Religious holiday allowance (Tunjangan Hari Raya)",
    )
    others: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )
    total_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False, default=Decimal("0.00"),
    )

    # Approval block
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved_position: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    employee: Mapped["Employee"] = relationship(
        "Employee",
        back_populates="salary_slips",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id", "employee_id", "month", "year",
            name="uq_salary_slip_employee_period",
        ),
        CheckConstraint("year >= 1900 AND year <= 9999", name="year_range"),
    )

    def compute_total(self) -> Decimal:
        return compute_salary_total(self)

    def __repr__(self) -> str:
        return f"<SalarySlip(id={self.id}, employee_id={self.employee_id}, period={self.month} {self.year})>"


@event.listens_for(SalarySlip, "before_insert")
@event.listens_for(SalarySlip, "before_update")
def _recompute_total_salary(mapper, connection, target: SalarySlip) -> None:
    target.total_salary = target.compute_total()
