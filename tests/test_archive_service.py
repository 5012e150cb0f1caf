"""
PayDesk - Tests for period archives
"""

import io
import uuid
import zipfile
from decimal import Decimal

import pytest

from paydesk.services.archive_service import (
    PeriodArchiveService,
    build_archive,
    render_all,
    unique_entry_names,
)
from paydesk.services.document_pdf_service import RenderedDocument, SalarySlipPDFService
from paydesk.utils.error_handling import AccountNotFoundException, DocumentRenderException, NotFoundException

from tests.fixtures.factories import make_employee, make_slip


def entries(content: bytes):
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        return [(info.filename, archive.read(info)) for info in archive.infolist()]


class TestEntryNames:
    """Case-insensitive clash resolution in input order."""

    def test_clashes_get_numbered_suffixes(self):
        names = unique_entry_names([
            "Salary-Ani-May-2026.pdf",
            "Salary-ani-May-2026.pdf",
            "Salary-Budi-May-2026.pdf",
            "Salary-ANI-May-2026.pdf",
        ])
        assert names == [
            "Salary-Ani-May-2026.pdf",
            "Salary-ani-May-2026 (2).pdf",
            "Salary-Budi-May-2026.pdf",
            "Salary-ANI-May-2026 (3).pdf",
        ]

    def test_suffix_does_not_collide_with_existing_name(self):
        names = unique_entry_names(["a (2).pdf", "a.pdf", "a.pdf"])
        assert names == ["a (2).pdf", "a.pdf", "a (3).pdf"]

    def test_name_without_extension(self):
        assert unique_entry_names(["notes", "notes"]) == ["notes", "notes (2)"]


class TestBuildArchive:
    def test_one_entry_per_document_in_order(self):
        documents = [
            RenderedDocument(content=b"first", filename="x.pdf"),
            RenderedDocument(content=b"second", filename="X.pdf"),
        ]
        assert entries(build_archive(documents)) == [("x.pdf", b"first"), ("X (2).pdf", b"second")]

    def test_archives_are_reproducible(self):
        documents = [RenderedDocument(content=b"same", filename="a.pdf")]
        assert build_archive(documents) == build_archive(documents)

    @pytest.mark.asyncio
    async def test_render_all_keeps_input_order(self):
        def render(n):
            return RenderedDocument(content=str(n).encode(), filename=f"{n}.pdf")

        documents = await render_all(list(range(10)), render, concurrency=3)
        assert [d.filename for d in documents] == [f"{n}.pdf" for n in range(10)]


class FailingSlipRenderer(SalarySlipPDFService):
    """Fails on one employee's slip."""

    def __init__(self, fail_on: str):
        super().__init__(currency="IDR")
        self.fail_on = fail_on

    def render(self, slip, employee):
        if employee.name == self.fail_on:
            raise DocumentRenderException(f"Salary-{employee.name}", original_error=ValueError("boom"))
        return super().render(slip, employee)


class TestSalarySlipArchive:
    """Per-period salary slip archives."""

    async def _period(self, db_session, account_id, names):
        employees = [make_employee(account_id, str(i), name) for i, name in enumerate(names)]
        db_session.add_all(employees)
        await db_session.flush()
        db_session.add_all([
            make_slip(account_id, e.id, month="May", year=2026, bonus=Decimal(i))
            for i, e in enumerate(employees)
        ])
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_archive_has_one_pdf_per_slip(self, db_session, test_account):
        await self._period(db_session, test_account.id, ["Dewi", "ani", "Budi", "Ani", "Citra"])

        archive = await PeriodArchiveService(db_session, concurrency=2).salary_slip_archive(
            test_account.id, "may", 2026,
        )

        assert archive.filename == "Salary-May-2026.zip"
        assert archive.media_type == "application/zip"
        items = entries(archive.content)
        assert len(items) == 5
        # Same-name employees differ only in case; ordering between them is collation-dependent
        assert {name.lower() for name, _ in items} == {
            "salary-ani-may-2026.pdf",
            "salary-ani-may-2026 (2).pdf",
            "salary-budi-may-2026.pdf",
            "salary-citra-may-2026.pdf",
            "salary-dewi-may-2026.pdf",
        }
        assert all(content.startswith(b"%PDF") for _, content in items)

    @pytest.mark.asyncio
    async def test_render_failure_abandons_archive(self, db_session, test_account):
        await self._period(db_session, test_account.id, ["Ani", "Budi", "Citra"])
        service = PeriodArchiveService(db_session, slip_renderer=FailingSlipRenderer("Budi"))

        with pytest.raises(DocumentRenderException):
            await service.salary_slip_archive(test_account.id, "May", 2026)

    @pytest.mark.asyncio
    async def test_empty_period(self, db_session, test_salary_slip):
        with pytest.raises(NotFoundException):
            await PeriodArchiveService(db_session).salary_slip_archive(
                test_salary_slip.account_id, "December", 2026,
            )

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session):
        with pytest.raises(AccountNotFoundException):
            await PeriodArchiveService(db_session).salary_slip_archive(uuid.uuid4(), "May", 2026)


class TestInvoiceArchive:
    @pytest.mark.asyncio
    async def test_invoice_archive(self, db_session, test_invoice):
        archive = await PeriodArchiveService(db_session).invoice_archive(
            test_invoice.account_id, "March", 2026,
        )
        assert archive.filename == "Invoice-March-2026.zip"
        assert [name for name, _ in entries(archive.content)] == ["Invoice-Acme Corp-March-2026.pdf"]

    @pytest.mark.asyncio
    async def test_invoices_outside_the_month_are_excluded(self, db_session, test_invoice):
        with pytest.raises(NotFoundException):
            await PeriodArchiveService(db_session).invoice_archive(test_invoice.account_id, "April", 2026)
