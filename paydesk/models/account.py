"""
PayDesk - Account Model

An account is the owner scope: every employee, salary slip and invoice
belongs to exactly one account and queries never cross accounts.
"""

from typing import TYPE_CHECKING, List

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paydesk.models.base import BaseModel

if TYPE_CHECKING:
    from paydesk.models.payroll import Employee
    from paydesk.models.invoice import Invoice


class Account(BaseModel):
    """Owner scope for roster, payroll and invoice records."""

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="account",
        passive_deletes=True,
    )
    invoices: Mapped[List["Invoice"]] = relationship(
        "Invoice",
        back_populates="account",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name})>"
