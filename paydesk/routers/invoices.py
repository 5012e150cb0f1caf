"""
PayDesk - Invoice Router
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import get_account
from paydesk.models.account import Account
from paydesk.models.invoice import InvoiceStatus
from paydesk.schemas.invoice import (
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStatsResponse,
    InvoiceStatusUpdate,
    InvoiceUpdate,
)
from paydesk.schemas.payroll import MonthName
from paydesk.services.archive_service import PeriodArchiveService
from paydesk.services.document_pdf_service import InvoicePDFService
from paydesk.services.invoice_service import InvoiceService
from paydesk.utils.error_handling import InvoiceNotFoundException
from paydesk.utils.responses import attachment_response


router = APIRouter()


@router.post(
    "/invoices",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an invoice",
)
async def create_invoice(
    account_id: uuid.UUID,
    invoice_data: InvoiceCreate,
    db: AsyncSession = Depends(get_async_session),
):
    data = invoice_data.model_dump()
    return await InvoiceService(db).create_invoice(account_id, data)


@router.get(
    "/invoices",
    response_model=InvoiceListResponse,
    summary="List invoices",
)
async def list_invoices(
    account: Account = Depends(get_account),
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search by invoice number or client"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
):
    invoices, total = await InvoiceService(db).list_invoices(
        account.id, status=invoice_status, search=search, page=page, per_page=per_page,
    )
    return InvoiceListResponse(
        items=[InvoiceResponse.model_validate(invoice) for invoice in invoices],
        total=total,
    )


@router.get(
    "/invoices/stats",
    response_model=InvoiceStatsResponse,
    summary="Invoice dashboard figures",
    description="Counts per status, revenue from paid invoices, and invoices issued this month and last month.",
)
async def invoice_stats(
    account: Account = Depends(get_account),
    db: AsyncSession = Depends(get_async_session),
):
    stats = await InvoiceService(db).get_stats(account.id)
    return InvoiceStatsResponse(
        total_invoices=stats.total_invoices,
        total_revenue=stats.total_revenue,
        current_month_invoices=stats.current_month_invoices,
        last_month_invoices=stats.last_month_invoices,
        status_counts=stats.status_counts,
    )


@router.get(
    "/invoices/archive",
    summary="Download all invoices issued in a period as ZIP",
)
async def invoice_archive(
    account_id: uuid.UUID,
    month: MonthName = Query(..., description="English month name, e.g. January"),
    year: int = Query(..., ge=1900, le=9999),
    db: AsyncSession = Depends(get_async_session),
):
    archive = await PeriodArchiveService(db).invoice_archive(account_id, month, year)
    return attachment_response(archive)


@router.get(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
)
async def get_invoice(
    account_id: uuid.UUID,
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    invoice = await InvoiceService(db).get_invoice(account_id, invoice_id)
    if not invoice:
        raise InvoiceNotFoundException(invoice_id)
    return invoice


@router.put(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Update invoice",
    description="Items, when sent, replace the existing items; totals are recomputed.",
)
async def update_invoice(
    account_id: uuid.UUID,
    invoice_id: uuid.UUID,
    invoice_data: InvoiceUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    return await InvoiceService(db).update_invoice(
        account_id, invoice_id, invoice_data.model_dump(exclude_unset=True),
    )


@router.patch(
    "/invoices/{invoice_id}/status",
    response_model=InvoiceResponse,
    summary="Change invoice status",
)
async def update_invoice_status(
    account_id: uuid.UUID,
    invoice_id: uuid.UUID,
    status_data: InvoiceStatusUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    return await InvoiceService(db).update_status(
        account_id, invoice_id, InvoiceStatus(status_data.status),
    )


@router.delete(
    "/invoices/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete invoice",
)
async def delete_invoice(
    account_id: uuid.UUID,
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    await InvoiceService(db).delete_invoice(account_id, invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/invoices/{invoice_id}/pdf",
    summary="Download an invoice as PDF",
)
async def invoice_pdf(
    account_id: uuid.UUID,
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    invoice = await InvoiceService(db).get_invoice(account_id, invoice_id)
    if not invoice:
        raise InvoiceNotFoundException(invoice_id)
    return attachment_response(InvoicePDFService().render(invoice))
