"""
PayDesk - Invoice Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional, List, Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator


InvoiceStatusEnum = Literal["PENDING", "PAID", "OVERDUE", "CANCELLED"]


class InvoiceItemCreate(BaseModel):
    """Invoice line item request. The item total is quantity times price."""
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(default=Decimal("1"), gt=0, decimal_places=2)
    price: Decimal = Field(..., ge=0, decimal_places=2)


class InvoiceItemResponse(BaseModel):
    id: UUID
    description: str
    quantity: Decimal
    price: Decimal
    total: Decimal
    sort_order: int

    class Config:
        from_attributes = True


class InvoiceCreate(BaseModel):
    """
    Create invoice request.

    When invoice_no is omitted one is generated as INV-YYYYMM-NNNN.
    """
    invoice_no: Optional[str] = Field(None, min_length=1, max_length=50)
    status: InvoiceStatusEnum = "PENDING"
    issue_date: date
    due_date: Optional[date] = None
    our_name: str = Field(..., min_length=1, max_length=255)
    our_business_name: Optional[str] = None
    our_address: Optional[str] = None
    client_name: str = Field(..., min_length=1, max_length=255)
    client_business_name: Optional[str] = None
    client_address: Optional[str] = None
    client_email: Optional[EmailStr] = None
    notes: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(..., min_length=1)


class InvoiceResponse(BaseModel):
    id: UUID
    account_id: UUID
    invoice_no: str
    status: InvoiceStatusEnum
    issue_date: date
    due_date: Optional[date] = None
    our_name: str
    our_business_name: Optional[str] = None
    our_address: Optional[str] = None
    client_name: str
    client_business_name: Optional[str] = None
    client_address: Optional[str] = None
    client_email: Optional[str] = None
    notes: Optional[str] = None
    total: Decimal
    items: List[InvoiceItemResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvoiceUpdate(BaseModel):
    """
    Update invoice request. Only provided fields are changed.

    Items, when given, replace the existing items and the totals are recomputed.
    """
    invoice_no: Optional[str] = Field(None, min_length=1, max_length=50)
    status: Optional[InvoiceStatusEnum] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    our_name: Optional[str] = Field(None, min_length=1, max_length=255)
    our_business_name: Optional[str] = None
    our_address: Optional[str] = None
    client_name: Optional[str] = Field(None, min_length=1, max_length=255)
    client_business_name: Optional[str] = None
    client_address: Optional[str] = None
    client_email: Optional[EmailStr] = None
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        for name in ("invoice_no", "status", "issue_date", "our_name", "client_name", "items"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be empty")
        return self


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatusEnum


class InvoiceListResponse(BaseModel):
    """Paginated invoice list."""
    items: List[InvoiceResponse]
    total: int


class InvoiceStatsResponse(BaseModel):
    """Dashboard figures for an account's invoices."""
    total_invoices: int
    total_revenue: Decimal
    current_month_invoices: int
    last_month_invoices: int
    status_counts: Dict[str, int]
