"""
Printable ticket rendering with reportlab.
"""

import io
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
QR_SIZE = 70 * mm
BRAND_COLOR = colors.HexColor("#4F46E5")
FOOTER_TEXT = "This ticket is non-transferable and valid for one-time use only."


@dataclass
class TicketDocument:
    """Everything printed on one ticket page."""

    ticket_number: str
    ticket_type: str
    event_title: str
    event_date: datetime
    venue: str
    qr_png: bytes
    location: Optional[str] = None
    seat_number: Optional[str] = None
    attendee_name: Optional[str] = None

    @property
    def filename(self) -> str:
        return f"ticket-{self.ticket_number}.pdf"


def _draw_ticket(pdf: canvas.Canvas, ticket: TicketDocument) -> None:
    header_height = 30 * mm
    pdf.setFillColor(BRAND_COLOR)
    pdf.rect(0, PAGE_HEIGHT - header_height, PAGE_WIDTH, header_height, stroke=0, fill=1)
    pdf.setFillColor(colors.white)
    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawString(MARGIN, PAGE_HEIGHT - 19 * mm, ticket.event_title[:60])

    y = PAGE_HEIGHT - header_height - 15 * mm
    rows = [
        ("Date", ticket.event_date.strftime("%A, %d %B %Y")),
        ("Time", ticket.event_date.strftime("%H:%M %Z").strip()),
        ("Venue", ticket.venue if not ticket.location else f"{ticket.venue}, {ticket.location}"),
        ("Ticket type", ticket.ticket_type.title()),
        ("Ticket number", ticket.ticket_number),
    ]
    if ticket.seat_number:
        rows.append(("Seat", ticket.seat_number))
    if ticket.attendee_name:
        rows.append(("Attendee", ticket.attendee_name))

    for label, value in rows:
        pdf.setFillColor(colors.grey)
        pdf.setFont("Helvetica", 10)
        pdf.drawString(MARGIN, y, label.upper())
        pdf.setFillColor(colors.black)
        pdf.setFont("Helvetica-Bold", 13)
        pdf.drawString(MARGIN, y - 6 * mm, value[:70])
        y -= 15 * mm

    qr_x = (PAGE_WIDTH - QR_SIZE) / 2
    qr_y = y - QR_SIZE - 5 * mm
    pdf.drawImage(ImageReader(io.BytesIO(ticket.qr_png)), qr_x, qr_y, QR_SIZE, QR_SIZE)
    pdf.setFont("Helvetica", 9)
    pdf.setFillColor(colors.grey)
    pdf.drawCentredString(PAGE_WIDTH / 2, qr_y - 6 * mm, "Present this code at the entrance")

    pdf.line(MARGIN, 25 * mm, PAGE_WIDTH - MARGIN, 25 * mm)
    pdf.drawCentredString(PAGE_WIDTH / 2, 18 * mm, FOOTER_TEXT)


def render_tickets_pdf(tickets: Iterable[TicketDocument], title: str = "Evently tickets") -> bytes:
    """Render tickets into a single PDF, one A4 page each."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(title)
    pdf.setAuthor("Evently")

    for ticket in tickets:
        _draw_ticket(pdf, ticket)
        pdf.showPage()

    pdf.save()
    return buffer.getvalue()


def build_tickets_zip(tickets: Iterable[TicketDocument]) -> bytes:
    """Bundle one PDF per ticket into a ZIP archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for ticket in tickets:
            archive.writestr(ticket.filename, render_tickets_pdf([ticket], title=ticket.ticket_number))
    return buffer.getvalue()
