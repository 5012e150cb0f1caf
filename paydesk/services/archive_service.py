"""
PayDesk - Period Archive Service

Bundles rendered documents for one period into a single ZIP archive.

Entry names are unique ignoring case: the first document keeps its name and
later clashes get " (2)", " (3)", ... before the extension, assigned in input
order. The archive is built in memory and only returned once complete; any
render failure abandons the whole archive.
"""

import asyncio
import io
import logging
import uuid
import zipfile
from typing import Callable, List, Optional, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.config import settings
from paydesk.models.payroll import normalize_month
from paydesk.services.account_service import AccountService
from paydesk.services.document_pdf_service import (
    InvoicePDFService,
    RenderedDocument,
    SalarySlipPDFService,
)
from paydesk.services.invoice_service import InvoiceService
from paydesk.services.payroll_service import PayrollService
from paydesk.utils.error_handling import DocumentRenderException, NotFoundException

logger = logging.getLogger(__name__)

ZIP_MEDIA_TYPE = "application/zip"

T = TypeVar("T")

# Fixed timestamp for archive entries so archives are reproducible
_ENTRY_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def unique_entry_names(filenames: Sequence[str]) -> List[str]:
    """Resolve case-insensitive name clashes with ' (n)' suffixes, in order."""
    taken = set()
    resolved = []
    for filename in filenames:
        stem, dot, extension = filename.rpartition(".")
        if not dot:
            stem, extension = filename, ""
        candidate = filename
        counter = 2
        while candidate.lower() in taken:
            candidate = f"{stem} ({counter}){dot}{extension}"
            counter += 1
        taken.add(candidate.lower())
        resolved.append(candidate)
    return resolved


def build_archive(documents: Sequence[RenderedDocument]) -> bytes:
    """ZIP the documents, one entry per document, in input order."""
    buffer = io.BytesIO()
    names = unique_entry_names([document.filename for document in documents])
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, document in zip(names, documents):
            info = zipfile.ZipInfo(name, date_time=_ENTRY_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, document.content)
    return buffer.getvalue()


async def render_all(
    records: Sequence[T],
    render: Callable[[T], RenderedDocument],
    concurrency: int,
) -> List[RenderedDocument]:
    """
    Render records in worker threads, at most ``concurrency`` at a time.
    Results keep the order of ``records``.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def render_one(record: T) -> RenderedDocument:
        async with semaphore:
            return await asyncio.to_thread(render, record)

    tasks = [asyncio.ensure_future(render_one(record)) for record in records]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class PeriodArchiveService:
    """Builds per-period document archives for an account."""

    def __init__(
        self,
        db: AsyncSession,
        slip_renderer: Optional[SalarySlipPDFService] = None,
        invoice_renderer: Optional[InvoicePDFService] = None,
        concurrency: Optional[int] = None,
    ):
        self.db = db
        self.slip_renderer = slip_renderer or SalarySlipPDFService()
        self.invoice_renderer = invoice_renderer or InvoicePDFService()
        self.concurrency = concurrency or settings.render_concurrency

    async def salary_slip_archive(self, account_id: uuid.UUID, month: str, year: int) -> RenderedDocument:
        """All salary slips of a period, ordered by employee name then slip id."""
        month = normalize_month(month)
        await AccountService(self.db).get_account(account_id)
        slips = await PayrollService(self.db).list_salary_slips(account_id, month=month, year=year)
        if not slips:
            raise NotFoundException(
                "SalarySlip", message=f"No salary slips for {month} {year}",
            )

        documents = await render_all(
            slips,
            lambda slip: self.slip_renderer.render(slip, slip.employee),
            self.concurrency,
        )
        return self._package(documents, f"Salary-{month}-{year}.zip", account_id)

    async def invoice_archive(self, account_id: uuid.UUID, month: str, year: int) -> RenderedDocument:
        """All invoices issued in a period, ordered by client name then id."""
        month = normalize_month(month)
        await AccountService(self.db).get_account(account_id)
        invoices = await InvoiceService(self.db).list_invoices_for_period(account_id, month, year)
        if not invoices:
            raise NotFoundException(
                "Invoice", message=f"No invoices for {month} {year}",
            )

        documents = await render_all(invoices, self.invoice_renderer.render, self.concurrency)
        return self._package(documents, f"Invoice-{month}-{year}.zip", account_id)

    def _package(self, documents: List[RenderedDocument], filename: str, account_id: uuid.UUID) -> RenderedDocument:
        try:
            content = build_archive(documents)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            raise DocumentRenderException(filename, original_error=e)
        logger.info(f"Built {filename} for account {account_id} with {len(documents)} documents")
        return RenderedDocument(content=content, filename=filename, media_type=ZIP_MEDIA_TYPE)
