"""Booking ticket PDF and the QR code printed on it."""
import io
import json
import logging
import re
import uuid
from xml.sax.saxutils import escape

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

log = logging.getLogger(__name__)

BRAND = colors.HexColor("#1e3a8a")
DARK = colors.HexColor("#1e293b")

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
_BARE_UUID = re.compile(_UUID, re.IGNORECASE)
_BOOKING_URL = re.compile(r"/bookings/(" + _UUID + ")", re.IGNORECASE)


def qr_payload(booking) -> str:
    return json.dumps({"booking_id": booking.id})


def booking_id_from_qr(content):
    """
    Booking id encoded in a scanned ticket, or None.

    Accepts the JSON payload printed on current tickets, a bare UUID, or a
    booking URL such as ``https://host/api/bookings/<id>/details``.
    """
    if not content or not isinstance(content, str):
        return None
    text = content.strip()

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict) and _BARE_UUID.fullmatch(str(parsed.get("booking_id", ""))):
        return str(uuid.UUID(parsed["booking_id"]))

    if _BARE_UUID.fullmatch(text):
        return str(uuid.UUID(text))

    match = _BOOKING_URL.search(text)
    if match:
        return str(uuid.UUID(match.group(1)))
    match = _BARE_UUID.search(text)
    return str(uuid.UUID(match.group(0))) if match else None


def _qr_drawing(payload: str, size: float) -> Drawing:
    widget = QrCodeWidget(payload)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    drawing.hAlign = "CENTER"
    return drawing


def render_ticket_pdf(booking, slot, service, tenant) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A5,
        rightMargin=12 * mm,
        leftMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=f"Ticket {booking.id}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("TicketTitle", parent=styles["Heading1"], fontSize=18, textColor=BRAND, alignment=1)
    small_style = ParagraphStyle("TicketSmall", parent=styles["Normal"], fontSize=8, textColor=colors.grey, alignment=1)

    rows = [
        ["Booking", booking.id[:8].upper()],
        ["Name", booking.customer_name],
        ["Service", service.name],
        ["Date", slot.start_time.strftime("%A %d %B %Y")],
        ["Time", f"{slot.start_time:%H:%M} - {slot.end_time:%H:%M}"],
        ["Visitors", f"{booking.visitor_count} ({booking.adult_count} adult, {booking.child_count} child)"],
    ]
    if booking.package_covered_quantity:
        rows.append(["Package", f"{booking.package_covered_quantity} ticket(s) covered"])
    rows.append(["Total", f"{booking.total_price:.2f}"])
    rows.append(["Payment", booking.payment_status.replace("_", " ")])

    table = Table([[str(a), str(b)] for a, b in rows], colWidths=[28 * mm, 88 * mm])
    table.setStyle(TableStyle([
        ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 10),
        ("FONT", (1, 0), (1, -1), "Helvetica", 10),
        ("TEXTCOLOR", (0, 0), (-1, -1), DARK),
        ("LINEBELOW", (0, 0), (-1, -2), 0.25, colors.lightgrey),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]))

    story = [
        Paragraph(escape(tenant.name), title_style),
        Spacer(1, 4 * mm),
        table,
        Spacer(1, 6 * mm),
        _qr_drawing(qr_payload(booking), 40 * mm),
        Spacer(1, 4 * mm),
        Paragraph(f"Ticket ID {escape(booking.id)}", small_style),
    ]
    doc.build(story)

    pdf = buffer.getvalue()
    log.debug("Rendered ticket for booking %s (%s bytes)", booking.id, len(pdf))
    return pdf
