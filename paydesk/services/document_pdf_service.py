"""
PayDesk - Document PDF Service

Renders salary slips and invoices to PDF with ReportLab.

Layout is fixed: A4, 15 mm margins, header block, identity block, itemised
amounts table, total, signature or notes block. Documents are built in
invariant mode so the same record always renders to the same bytes.

Amounts are formatted per currency from Decimal values; the total printed on
a document is the stored total, to the cent.
"""

import io
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from paydesk.config import settings
from paydesk.models.payroll import MONTH_NAMES, SALARY_COMPONENTS
from paydesk.utils.error_handling import DocumentRenderException

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
PAGE_MARGIN = 15 * mm
BRAND_COLOR = colors.HexColor('#1a365d')
CENT = Decimal("0.01")


# ===========================================
# FORMATTING
# ===========================================

# code -> (prefix, thousands separator, decimal separator)
CURRENCY_FORMATS: Dict[str, Tuple[str, str, str]] = {
    "IDR": ("Rp ", ".", ","),
    "USD": ("$", ",", "."),
    "EUR": ("€", ".", ","),
    # No naira glyph in the standard PDF fonts
    "NGN": ("NGN ", ",", "."),
}

COMPONENT_LABELS = {
    "basic_salary": "Basic Salary",
    "position_allowance": "Position Allowance",
    "family_allowance": "Family Allowance",
    "child_allowance": "Child Allowance",
    "food_allowance": "Food Allowance",
    "bonus": "Bonus",
    "thr": "THR (Holiday Allowance)",
    "others": "Others",
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f\x7f]')


def to_cents(amount) -> Decimal:
    """Decimal rounded half-up to the cent."""
    if amount is None:
        amount = Decimal("0")
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount, currency: str) -> str:
    """
    Format an amount for display.

    >>> format_amount(Decimal("1234567.891"), "IDR")
    'Rp 1.234.567,89'
    """
    code = (currency or "").upper()
    prefix, thousands, decimal_point = CURRENCY_FORMATS.get(code, (f"{code} ", ",", "."))
    value = to_cents(amount)
    sign = "-" if value < 0 else ""
    grouped = f"{abs(value):,.2f}"
    if (thousands, decimal_point) != (",", "."):
        grouped = grouped.replace(",", "\0").replace(".", decimal_point).replace("\0", thousands)
    return f"{sign}{prefix}{grouped}"


def format_quantity(quantity) -> str:
    value = Decimal(str(quantity))
    if value == value.to_integral_value():
        return str(int(value))
    return str(value.normalize())


def safe_filename_part(value: Optional[str]) -> str:
    """Replace characters that are unsafe in archive entry names with '_'."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (value or "").strip())
    return cleaned or "_"


def document_filename(kind: str, subject: str, month: str, year: int, extension: str = "pdf") -> str:
    """<kind>-<subject>-<month>-<year>.<ext>"""
    return f"{kind}-{safe_filename_part(subject)}-{month}-{year}.{extension}"


@dataclass(frozen=True)
class RenderedDocument:
    """A finished document, ready to be streamed or archived."""
    content: bytes
    filename: str
    media_type: str = PDF_MEDIA_TYPE


# ===========================================
# BASE
# ===========================================

class BasePDFService:
    """Shared page setup and styles for PayDesk documents."""

    def __init__(self, currency: str, compress: bool = True):
        self.currency = currency
        self.compress = compress

        styles = getSampleStyleSheet()
        self.styles = styles
        self.title_style = ParagraphStyle(
            'DocTitle',
            parent=styles['Heading1'],
            fontSize=18,
            textColor=BRAND_COLOR,
            spaceAfter=6,
        )
        self.heading_style = ParagraphStyle(
            'DocHeading',
            parent=styles['Heading2'],
            fontSize=12,
            textColor=BRAND_COLOR,
            spaceBefore=10,
            spaceAfter=4,
        )
        self.normal_style = ParagraphStyle(
            'DocNormal',
            parent=styles['Normal'],
            fontSize=10,
            spaceAfter=2,
        )
        self.right_style = ParagraphStyle(
            'DocRight',
            parent=styles['Normal'],
            fontSize=10,
            alignment=TA_RIGHT,
        )

    def money(self, amount) -> str:
        return format_amount(amount, self.currency)

    def _paragraph(self, text: Optional[str], style=None) -> Paragraph:
        return Paragraph(escape(text or "").replace("\n", "<br/>"), style or self.normal_style)

    def _build_pdf(self, elements: list, title: str) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=PAGE_MARGIN,
            leftMargin=PAGE_MARGIN,
            topMargin=PAGE_MARGIN,
            bottomMargin=PAGE_MARGIN,
            title=title,
            creator=settings.app_name,
            invariant=1,
            pageCompression=1 if self.compress else 0,
        )
        doc.build(elements)
        pdf_bytes = buffer.getvalue()
        buffer.close()
        return pdf_bytes

    def _amount_table(self, rows: List[List[str]], total_label: str, total: str, col_widths) -> Table:
        """Itemised table with a header row and a bold total row."""
        data = rows + [[total_label] + [""] * (len(rows[0]) - 2) + [total]]
        table = Table(data, colWidths=col_widths)
        table.setStyle(TableStyle([
            # Header styling
            ('BACKGROUND', (0, 0), (-1, 0), BRAND_COLOR),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),

            # Row styling
            ('FONTNAME', (0, 1), (-1, -2), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('TOPPADDING', (0, 0), (-1, -1), 5),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('GRID', (0, 0), (-1, -2), 0.5, colors.grey),
            ('ROWBACKGROUNDS', (0, 1), (-1, -2), [colors.white, colors.HexColor('#f8f9fa')]),

            # Total row
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('LINEABOVE', (0, -1), (-1, -1), 1, colors.black),
        ]))
        return table

    def _key_value_table(self, rows: List[Tuple[str, str]]) -> Table:
        table = Table([[label, value] for label, value in rows], colWidths=[45 * mm, 130 * mm])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
        ]))
        return table


# ===========================================
# SALARY SLIPS
# ===========================================

class SalarySlipPDFService(BasePDFService):
    """Renders one salary slip for one employee."""

    def __init__(self, currency: Optional[str] = None, compress: bool = True):
        super().__init__(currency or settings.document_currency, compress)

    @staticmethod
    def filename_for(slip, employee) -> str:
        return document_filename("Salary", employee.name, slip.month, slip.year)

    def render(self, slip, employee) -> RenderedDocument:
        """Render ``slip`` (belonging to ``employee``) to a PDF document."""
        filename = self.filename_for(slip, employee)
        try:
            content = self._build_pdf(self._slip_elements(slip, employee), title=filename[:-4])
        except Exception as e:
            logger.error(f"Failed to render salary slip {slip.id}", exc_info=True)
            raise DocumentRenderException(filename, original_error=e)
        return RenderedDocument(content=content, filename=filename)

    def _slip_elements(self, slip, employee) -> list:
        elements = []

        # Header
        elements.append(self._paragraph(slip.company_name, self.title_style))
        if slip.company_address:
            elements.append(self._paragraph(slip.company_address))
        elements.append(Spacer(1, 8))
        elements.append(Paragraph("<b>SALARY SLIP</b>", self.heading_style))
        elements.append(self._paragraph(f"Period: {slip.month} {slip.year}"))
        elements.append(Spacer(1, 8))

        # Employee identity
        status = getattr(employee.status, "value", employee.status)
        bank = " ".join(str(part) for part in (employee.bank, employee.bank_number) if part)
        elements.append(self._key_value_table([
            ("Name", employee.name),
            ("National ID", employee.national_id),
            ("Position", employee.position),
            ("Status", str(status).replace("_", " ").title()),
            ("Bank Account", bank or "-"),
        ]))
        elements.append(Spacer(1, 10))

        # Components
        rows = [["Component", "Amount"]]
        for name in SALARY_COMPONENTS:
            rows.append([COMPONENT_LABELS[name], self.money(getattr(slip, name))])
        elements.append(self._amount_table(
            rows, "Total Salary", self.money(slip.total_salary), col_widths=[110 * mm, 65 * mm],
        ))

        if slip.notes:
            elements.append(Paragraph("Notes", self.heading_style))
            elements.append(self._paragraph(slip.notes))

        elements.append(Spacer(1, 24))
        elements.append(self._signature_block(slip, employee))
        return elements

    def _signature_block(self, slip, employee) -> Table:
        approver = slip.approved_by or ""
        if slip.approved_position:
            approver = f"{approver} ({slip.approved_position})" if approver else slip.approved_position
        data = [
            ["Approved by", "Received by"],
            ["", ""],
            [approver or "________________", employee.name],
        ]
        table = Table(data, colWidths=[87 * mm, 87 * mm], rowHeights=[14, 40, 14])
        table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('LINEBELOW', (0, 1), (-1, 1), 0.5, colors.black),
        ]))
        return table


# ===========================================
# INVOICES
# ===========================================

class InvoicePDFService(BasePDFService):
    """Renders invoices with their items."""

    def __init__(self, currency: Optional[str] = None, compress: bool = True):
        super().__init__(currency or settings.invoice_currency, compress)

    @staticmethod
    def filename_for(invoice) -> str:
        month = MONTH_NAMES[invoice.issue_date.month - 1]
        return document_filename("Invoice", invoice.client_name, month, invoice.issue_date.year)

    def render(self, invoice) -> RenderedDocument:
        filename = self.filename_for(invoice)
        try:
            content = self._build_pdf(self._invoice_elements(invoice), title=filename[:-4])
        except Exception as e:
            logger.error(f"Failed to render invoice {invoice.id}", exc_info=True)
            raise DocumentRenderException(filename, original_error=e)
        return RenderedDocument(content=content, filename=filename)

    def _invoice_elements(self, invoice) -> list:
        elements = []

        status = getattr(invoice.status, "value", invoice.status)
        elements.append(Paragraph("INVOICE", self.title_style))
        elements.append(self._paragraph(f"Invoice No: {invoice.invoice_no}"))
        elements.append(self._paragraph(f"Status: {status}"))
        elements.append(self._paragraph(f"Date: {invoice.issue_date.isoformat()}"))
        if invoice.due_date:
            elements.append(self._paragraph(f"Due Date: {invoice.due_date.isoformat()}"))
        elements.append(Spacer(1, 10))

        elements.append(self._parties_table(invoice))
        elements.append(Spacer(1, 12))

        rows = [["Description", "Qty", "Price", "Total"]]
        for item in invoice.items:
            rows.append([
                item.description,
                format_quantity(item.quantity),
                self.money(item.price),
                self.money(item.total),
            ])
        elements.append(self._amount_table(
            rows, "Total", self.money(invoice.total),
            col_widths=[85 * mm, 20 * mm, 35 * mm, 40 * mm],
        ))

        if invoice.notes:
            elements.append(Paragraph("Notes", self.heading_style))
            elements.append(self._paragraph(invoice.notes))

        return elements

    def _parties_table(self, invoice) -> Table:
        def block(heading: str, lines: List[Optional[str]]) -> Paragraph:
            body = "<br/>".join(escape(line) for line in lines if line)
            return Paragraph(f"<b>{heading}</b><br/>{body}", self.normal_style)

        data = [[
            block("From", [invoice.our_name, invoice.our_business_name, invoice.our_address]),
            block("Bill To", [
                invoice.client_name, invoice.client_business_name,
                invoice.client_address, invoice.client_email,
            ]),
        ]]
        table = Table(data, colWidths=[90 * mm, 90 * mm])
        table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        return table
