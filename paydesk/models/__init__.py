"""
PayDesk - Database Models
"""

from paydesk.models.base import BaseModel, TimestampMixin
from paydesk.models.account import Account
from paydesk.models.payroll import (
    Employee,
    EmployeeStatus,
    Gender,
    SalarySlip,
    MONTH_NAMES,
    SALARY_COMPONENTS,
    compute_salary_total,
    normalize_month,
)
from paydesk.models.invoice import Invoice, InvoiceItem, InvoiceStatus

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "Account",
    "Employee",
    "EmployeeStatus",
    "Gender",
    "SalarySlip",
    "MONTH_NAMES",
    "SALARY_COMPONENTS",
    "compute_salary_total",
    "normalize_month",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
]
