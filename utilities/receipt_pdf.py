"""
Single-page loan and return receipts rendered with reportlab.

The layout is drawn top-down on an A4 canvas. Everything is kept on one
page: when the key list is longer than the space left above the signature
block, the remaining rows collapse into a "+N more" line.
"""
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from utilities.database import KEY_TYPE_LABELS

PAGE_W, PAGE_H = A4
BAR_H = 22 * mm
MARGIN_X = 16 * mm
FOOTER_RESERVED = 28 * mm
ROW_H = 6 * mm
BRAND_BLUE = colors.HexColor("#007bc4")
MUTED = colors.HexColor("#6b7280")

SIGNATURE_BLOCK_H = 45 * mm
RETURN_CONFIRMATION_H = 18 * mm


@dataclass
class ReceiptData:
    receipt_type: str                       # LOAN | RETURN
    loan_type: str = "TENANT"               # TENANT | MAINTENANCE
    keys: List[Dict[str, Any]] = field(default_factory=list)
    tenant_name: Optional[str] = None
    personal_number: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None
    contact_person: Optional[str] = None
    rental_object_code: Optional[str] = None
    lease_id: Optional[str] = None
    lease_number: Optional[str] = None
    organisation_name: str = ""
    organisation_footer: str = ""
    issued_at: datetime = field(default_factory=datetime.now)

    @property
    def is_loan(self) -> bool:
        return self.receipt_type == "LOAN"


def receipt_number(receipt_type: str, when: datetime) -> str:
    prefix = "KL" if receipt_type == "LOAN" else "KR"
    return f"{prefix}-{when:%Y%m%d-%H%M%S}"


def receipt_file_name(data: ReceiptData) -> str:
    kind = "key_loan" if data.is_loan else "key_return"
    ident = data.personal_number or data.contact or "unknown"
    return f"{kind}_{ident}_{data.issued_at:%Y%m%d}.pdf"


class _Cursor:
    """Tracks the current baseline measured from the top of the page."""

    def __init__(self, pdf: canvas.Canvas):
        self.pdf = pdf
        self.y = 0.0

    def text(self, x: float, value: str, *, font: str = "Helvetica", size: int = 10, color=colors.black):
        self.pdf.setFont(font, size)
        self.pdf.setFillColor(color)
        self.pdf.drawString(x, PAGE_H - self.y, value)

    def heading(self, value: str):
        self.text(MARGIN_X, value, font="Helvetica-Bold", size=12, color=BRAND_BLUE)
        self.y += 8 * mm

    def line(self, value: str, step: float = 7 * mm):
        self.text(MARGIN_X, value)
        self.y += step


def _content_bottom() -> float:
    return PAGE_H - FOOTER_RESERVED


def _draw_header(cur: _Cursor, data: ReceiptData):
    pdf = cur.pdf
    pdf.setFillColor(BRAND_BLUE)
    pdf.rect(0, PAGE_H - BAR_H, PAGE_W, BAR_H, stroke=0, fill=1)
    title = "KEY LOAN - RECEIPT" if data.is_loan else "KEY RETURN - RECEIPT"
    pdf.setFillColor(colors.white)
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawString(MARGIN_X, PAGE_H - 14 * mm, title)
    if data.organisation_name:
        pdf.setFont("Helvetica", 10)
        pdf.drawRightString(PAGE_W - MARGIN_X, PAGE_H - 14 * mm, data.organisation_name)

    cur.y = BAR_H + 11 * mm
    cur.line(f"Receipt number: {receipt_number(data.receipt_type, data.issued_at)}")
    cur.line(f"Date: {data.issued_at:%Y-%m-%d}")
    cur.line(f"Time: {data.issued_at:%H:%M}", step=12 * mm)


def _draw_recipient(cur: _Cursor, data: ReceiptData):
    if data.loan_type == "MAINTENANCE":
        cur.heading("CONTRACTOR")
        cur.line(f"Company: {data.contact or '-'}")
        cur.line(f"Contact person: {data.contact_person or '-'}")
    else:
        cur.heading("TENANT")
        cur.line(f"Name: {data.tenant_name or data.contact or '-'}")
        cur.line(f"Personal number: {data.personal_number or '-'}")
        if data.address:
            cur.line(f"Address: {data.address}")
    cur.y += 7 * mm

    if data.rental_object_code or data.lease_id or data.lease_number:
        cur.heading("AGREEMENT")
        cur.line(f"Rental object: {data.rental_object_code or '-'}")
        if data.lease_id:
            cur.line(f"Lease id: {data.lease_id}")
        if data.lease_number:
            cur.line(f"Lease number: {data.lease_number}")
        cur.y += 7 * mm


def _draw_keys(cur: _Cursor, data: ReceiptData):
    cur.heading("KEYS")
    columns = ((MARGIN_X, "Key name"), (80 * mm, "Type"), (120 * mm, "Seq. no."), (150 * mm, "Flex no."))
    for x, label in columns:
        cur.text(x, label, font="Helvetica-Bold", size=10)
    cur.y += 2 * mm
    cur.pdf.setStrokeColor(MUTED)
    cur.pdf.line(MARGIN_X, PAGE_H - cur.y, PAGE_W - MARGIN_X, PAGE_H - cur.y)
    cur.y += 5 * mm

    reserve = SIGNATURE_BLOCK_H if data.is_loan else RETURN_CONFIRMATION_H
    # two extra rows: the "+N more" line and the total
    space = _content_bottom() - reserve - cur.y - 2 * ROW_H
    rows_allowed = max(0, int(space // ROW_H))
    keys = data.keys
    visible = keys if len(keys) <= rows_allowed else keys[:rows_allowed]

    for key in visible:
        cur.text(MARGIN_X, str(key.get("keyName") or "-"))
        cur.text(80 * mm, KEY_TYPE_LABELS.get(key.get("keyType"), key.get("keyType") or "-"))
        cur.text(120 * mm, str(key.get("keySequenceNumber") or "-"))
        cur.text(150 * mm, str(key.get("flexNumber") or "-"))
        cur.y += ROW_H

    extra = len(keys) - len(visible)
    if extra > 0:
        cur.text(MARGIN_X, f"... +{extra} more", color=MUTED)
        cur.y += ROW_H
    cur.y += 2 * mm
    cur.text(MARGIN_X, f"Total number of keys: {len(keys)}", font="Helvetica-Bold")
    cur.y += 12 * mm


def _draw_confirmation(cur: _Cursor, data: ReceiptData):
    cur.heading("CONFIRMATION")
    if data.is_loan:
        text = (
            "By signing, the recipient confirms having received the keys listed above "
            "and accepts responsibility for them until they are returned."
        )
    else:
        text = "The keys listed above have been returned and checked in."
    for chunk in _wrap(text, 95):
        cur.line(chunk, step=5 * mm)

    if data.is_loan:
        cur.y += 12 * mm
        cur.pdf.setStrokeColor(colors.black)
        cur.pdf.line(MARGIN_X, PAGE_H - cur.y, 100 * mm, PAGE_H - cur.y)
        cur.pdf.line(120 * mm, PAGE_H - cur.y, PAGE_W - MARGIN_X, PAGE_H - cur.y)
        cur.y += 5 * mm
        cur.text(MARGIN_X, "Recipient signature", size=9, color=MUTED)
        cur.text(120 * mm, "Date", size=9, color=MUTED)


def _draw_footer(pdf: canvas.Canvas, data: ReceiptData):
    disclaimer = (
        "Lost keys must be reported immediately. Replacement of lost keys and locks is charged to the recipient."
        if data.is_loan
        else "Keep this receipt as proof that the keys have been returned."
    )
    pdf.setFont("Helvetica", 8)
    pdf.setFillColor(MUTED)
    y = 16 * mm
    for chunk in _wrap(disclaimer, 120):
        pdf.drawString(MARGIN_X, y, chunk)
        y -= 4 * mm
    if data.organisation_footer:
        pdf.drawString(MARGIN_X, 10 * mm, data.organisation_footer)
    pdf.drawRightString(PAGE_W - 10 * mm, 4 * mm, "Page 1")


def _wrap(text: str, width: int) -> List[str]:
    lines, current = [], ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if len(candidate) > width and current:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def render_receipt(data: ReceiptData) -> bytes:
    """Render ``data`` as a one-page PDF and return the bytes."""
    output = BytesIO()
    pdf = canvas.Canvas(output, pagesize=A4)
    title = "Key loan receipt" if data.is_loan else "Key return receipt"
    pdf.setTitle(f"{title} {receipt_number(data.receipt_type, data.issued_at)}")

    cur = _Cursor(pdf)
    _draw_header(cur, data)
    _draw_recipient(cur, data)
    _draw_keys(cur, data)
    _draw_confirmation(cur, data)
    _draw_footer(pdf, data)

    pdf.showPage()
    pdf.save()
    return output.getvalue()
