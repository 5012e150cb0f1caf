"""
PayDesk - Services Package

Business logic services.
"""

from paydesk.services.account_service import AccountService
from paydesk.services.payroll_service import PayrollService, PeriodCopyResult
from paydesk.services.reconciliation_service import RosterReconciler, ImportResult, plan_reconciliation
from paydesk.services.invoice_service import InvoiceService
from paydesk.services.document_pdf_service import (
    InvoicePDFService,
    RenderedDocument,
    SalarySlipPDFService,
)
from paydesk.services.archive_service import PeriodArchiveService, build_archive

__all__ = [
    "AccountService",
    "PayrollService",
    "PeriodCopyResult",
    "RosterReconciler",
    "ImportResult",
    "plan_reconciliation",
    "InvoiceService",
    "InvoicePDFService",
    "RenderedDocument",
    "SalarySlipPDFService",
    "PeriodArchiveService",
    "build_archive",
]
