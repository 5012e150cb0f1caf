"""
PayDesk - Invoice Service

Invoice CRUD, status changes and per-account invoice stats. Item totals are
quantity * price and the invoice total is the sum of item totals; neither is
taken from input, on create or on update.
"""

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from paydesk.models.payroll import month_number
from paydesk.utils.concurrency import run_write_batch
from paydesk.utils.error_handling import DuplicateEntryException, InvoiceNotFoundException

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def line_total(quantity, price) -> Decimal:
    return (Decimal(str(quantity)) * Decimal(str(price))).quantize(CENT, rounding=ROUND_HALF_UP)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def previous_month(year: int, month: int) -> Tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


@dataclass
class InvoiceStats:
    """Per-account invoice figures for the dashboard."""
    total_invoices: int = 0
    total_revenue: Decimal = Decimal("0.00")
    current_month_invoices: int = 0
    last_month_invoices: int = 0
    status_counts: Dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in InvoiceStatus}
    )


class InvoiceService:
    """Service for invoice operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate_invoice_number(self, account_id: uuid.UUID, issue_date: date) -> str:
        """
        Generate unique invoice number for an account.

        Format: INV-YYYYMM-NNNN (e.g., INV-202601-0001). The sequence continues
        from the highest number on file for that month, so gaps left by deleted
        invoices are not refilled.
        """
        prefix = f"INV-{issue_date.year}{issue_date.month:02d}"

        result = await self.db.execute(
            select(Invoice.invoice_no)
            .where(Invoice.account_id == account_id)
            .where(Invoice.invoice_no.like(f"{prefix}-%"))
        )
        highest = 0
        for invoice_no in result.scalars():
            suffix = invoice_no[len(prefix) + 1:]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}-{highest + 1:04d}"

    async def _ensure_unique_number(
        self,
        account_id: uuid.UUID,
        invoice_no: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Invoice.id).where(
            and_(Invoice.account_id == account_id, Invoice.invoice_no == invoice_no)
        )
        if exclude_id:
            query = query.where(Invoice.id != exclude_id)
        existing = await self.db.execute(query)
        if existing.first():
            raise DuplicateEntryException("Invoice", "invoice_no", invoice_no)

    @staticmethod
    def _set_items(invoice: Invoice, items_data: List[Dict[str, Any]]) -> None:
        """Replace the invoice's items and recompute every total."""
        invoice.items.clear()
        total = Decimal("0")
        for index, item in enumerate(items_data):
            amount = line_total(item["quantity"], item["price"])
            invoice.items.append(InvoiceItem(
                description=item["description"],
                quantity=item["quantity"],
                price=item["price"],
                total=amount,
                sort_order=index,
            ))
            total += amount
        invoice.total = total

    async def create_invoice(self, account_id: uuid.UUID, data: Dict[str, Any]) -> Invoice:
        """Create an invoice with its items."""
        data = dict(data)
        items_data: List[Dict[str, Any]] = data.pop("items")
        data["status"] = InvoiceStatus(data.get("status") or InvoiceStatus.PENDING)

        async def work() -> Invoice:
            invoice_no = data.get("invoice_no")
            if invoice_no:
                await self._ensure_unique_number(account_id, invoice_no)
            else:
                invoice_no = await self.generate_invoice_number(account_id, data["issue_date"])

            invoice = Invoice(account_id=account_id, **{**data, "invoice_no": invoice_no})
            self._set_items(invoice, items_data)

            self.db.add(invoice)
            await self.db.flush()
            return invoice

        invoice = await run_write_batch(self.db, account_id, work, description="invoice create")
        await self.db.refresh(invoice, attribute_names=["items", "created_at", "updated_at"])
        return invoice

    async def get_invoice(self, account_id: uuid.UUID, invoice_id: uuid.UUID) -> Optional[Invoice]:
        result = await self.db.execute(
            select(Invoice).where(
                and_(Invoice.id == invoice_id, Invoice.account_id == account_id)
            )
        )
        return result.scalar_one_or_none()

    async def list_invoices(
        self,
        account_id: uuid.UUID,
        status: Optional[InvoiceStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Invoice], int]:
        """List invoices, newest issue date first, with filters and pagination."""
        query = select(Invoice).where(Invoice.account_id == account_id)

        if status:
            query = query.where(Invoice.status == status)

        if search:
            search_term = f"%{search}%"
            query = query.where(
                or_(
                    Invoice.invoice_no.ilike(search_term),
                    Invoice.client_name.ilike(search_term),
                    Invoice.client_business_name.ilike(search_term),
                )
            )

        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar()

        query = query.order_by(Invoice.issue_date.desc(), Invoice.invoice_no.desc())
        query = query.offset((page - 1) * per_page).limit(per_page)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_invoices_for_period(
        self,
        account_id: uuid.UUID,
        month: str,
        year: int,
    ) -> List[Invoice]:
        """Invoices issued in the given month, ordered by client name then id."""
        first_day, last_day = month_bounds(year, month_number(month))

        result = await self.db.execute(
            select(Invoice)
            .where(
                and_(
                    Invoice.account_id == account_id,
                    Invoice.issue_date >= first_day,
                    Invoice.issue_date <= last_day,
                )
            )
            .order_by(Invoice.client_name, Invoice.id)
        )
        return list(result.scalars().all())

    async def update_invoice(
        self,
        account_id: uuid.UUID,
        invoice_id: uuid.UUID,
        data: Dict[str, Any],
    ) -> Invoice:
        """
        Update invoice details.

        When items are given they replace the existing ones and the totals
        are recomputed.
        """
        data = dict(data)
        items_data: Optional[List[Dict[str, Any]]] = data.pop("items", None)
        if data.get("status") is not None:
            data["status"] = InvoiceStatus(data["status"])

        async def work() -> Invoice:
            invoice = await self.get_invoice(account_id, invoice_id)
            if invoice is None:
                raise InvoiceNotFoundException(invoice_id)
            if data.get("invoice_no") and data["invoice_no"] != invoice.invoice_no:
                await self._ensure_unique_number(account_id, data["invoice_no"], exclude_id=invoice.id)
            for key, value in data.items():
                if hasattr(invoice, key):
                    setattr(invoice, key, value)
            if items_data is not None:
                self._set_items(invoice, items_data)
            await self.db.flush()
            return invoice

        invoice = await run_write_batch(self.db, account_id, work, description="invoice update")
        await self.db.refresh(invoice, attribute_names=["items", "updated_at"])
        return invoice

    async def update_status(
        self,
        account_id: uuid.UUID,
        invoice_id: uuid.UUID,
        status: InvoiceStatus,
    ) -> Invoice:
        return await self.update_invoice(account_id, invoice_id, {"status": status})

    async def delete_invoice(self, account_id: uuid.UUID, invoice_id: uuid.UUID) -> None:
        """Delete an invoice and its items."""
        async def work() -> None:
            invoice = await self.get_invoice(account_id, invoice_id)
            if invoice is None:
                raise InvoiceNotFoundException(invoice_id)
            await self.db.delete(invoice)
            await self.db.flush()

        await run_write_batch(self.db, account_id, work, description="invoice delete")
        logger.info(f"Deleted invoice {invoice_id} from account {account_id}")

    # ===========================================
    # STATS
    # ===========================================

    async def _count_issued_between(self, account_id: uuid.UUID, first_day: date, last_day: date) -> int:
        result = await self.db.execute(
            select(func.count(Invoice.id)).where(
                and_(
                    Invoice.account_id == account_id,
                    Invoice.issue_date >= first_day,
                    Invoice.issue_date <= last_day,
                )
            )
        )
        return result.scalar() or 0

    async def get_stats(self, account_id: uuid.UUID, today: Optional[date] = None) -> InvoiceStats:
        """
        Invoice counts per status, revenue from PAID invoices, and how many
        invoices were issued this month and last month (by issue date).
        """
        today = today or date.today()
        stats = InvoiceStats()

        result = await self.db.execute(
            select(Invoice.status, func.count(Invoice.id), func.sum(Invoice.total))
            .where(Invoice.account_id == account_id)
            .group_by(Invoice.status)
        )
        for status, count, amount in result.all():
            stats.status_counts[InvoiceStatus(status).value] = count
            stats.total_invoices += count
            if InvoiceStatus(status) == InvoiceStatus.PAID and amount is not None:
                stats.total_revenue = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)

        stats.current_month_invoices = await self._count_issued_between(
            account_id, *month_bounds(today.year, today.month)
        )
        stats.last_month_invoices = await self._count_issued_between(
            account_id, *month_bounds(*previous_month(today.year, today.month))
        )
        return stats
