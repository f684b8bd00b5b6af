# app/core/cert_pdf.py
import io
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from pypdf import PdfReader, PdfWriter

from app.core.scoring import percentage, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_COLOR = "#ea580c"
DEFAULT_TITLE = "Certificate of Completion"
_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")

MARGIN = 50
QR_SIZE = 100


@dataclass(frozen=True)
class Branding:
    """Read-only branding the renderer needs. Built by the caller from settings."""
    primary_color: str = DEFAULT_PRIMARY_COLOR
    company_name: str = "LMS"
    logo: str | None = None  # local file path; remote URLs are not fetched


@dataclass(frozen=True)
class TemplateDesign:
    title: str = DEFAULT_TITLE
    orientation: str = "portrait"
    background_pdf: str | None = None

    @classmethod
    def from_json(cls, design: dict | None) -> "TemplateDesign":
        design = design or {}
        orientation = str(design.get("orientation") or "portrait").lower()
        if orientation not in ("portrait", "landscape"):
            orientation = "portrait"
        return cls(
            title=str(design.get("title") or DEFAULT_TITLE),
            orientation=orientation,
            background_pdf=design.get("backgroundPdf") or design.get("background_pdf") or None,
        )


def parse_hex_color(value: str | None) -> colors.Color:
    m = _HEX_COLOR.match((value or "").strip())
    if not m:
        return colors.HexColor(DEFAULT_PRIMARY_COLOR)
    return colors.HexColor(f"#{m.group(1)}")


def format_score(score: int, max_score: int) -> str:
    """'earned/possible (pct%)'; a quiz worth 0 points has no percentage."""
    pct = percentage(score, max_score)
    if pct is None:
        return f"{score}/{max_score} (N/A)"
    pct = round_half_up(pct)
    return f"{score}/{max_score} ({pct}%)"


def render_qr_png(url: str) -> bytes:
    """PNG bytes of a QR code for `url`. Same input, same image."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=10, border=2)
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _fit_font_size(c: canvas.Canvas, text: str, font: str, size: float, max_width: float) -> float:
    while size > 10 and c.stringWidth(text, font, size) > max_width:
        size -= 1
    return size


def _centred(c, w, y, text, font, size, color, underline=False, max_width=None):
    if max_width:
        size = _fit_font_size(c, text, font, size, max_width)
    c.setFont(font, size)
    c.setFillColor(color)
    c.drawCentredString(w / 2, y, text)
    if underline:
        half = c.stringWidth(text, font, size) / 2
        c.setStrokeColor(color)
        c.setLineWidth(1)
        c.line(w / 2 - half, y - 4, w / 2 + half, y - 4)


def _draw_logo(c: canvas.Canvas, logo: str | None, w: float, h: float) -> None:
    if not logo or not os.path.isfile(logo):
        return
    try:
        img = ImageReader(logo)
        iw, ih = img.getSize()
        height = 50
        width = iw * height / ih if ih else height
        c.drawImage(img, (w - width) / 2, h - MARGIN - 20 - height, width, height, mask="auto")
    except (OSError, ValueError) as e:
        logger.warning("Failed to load branding logo %s for certificate: %s", logo, e)


def _make_certificate_page(
    *,
    page_size,
    title: str,
    recipient_name: str,
    course_title: str,
    score_line: str,
    certificate_no: str,
    issue_date: str,
    issuer_name: str,
    qr_png: bytes,
    branding: Branding,
) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=page_size)
    w, h = page_size
    brand = parse_hex_color(branding.primary_color)
    text_width = w - 2 * MARGIN - 40

    # Border
    c.setStrokeColor(brand)
    c.setLineWidth(3)
    c.rect(MARGIN, MARGIN, w - 2 * MARGIN, h - 2 * MARGIN)

    _draw_logo(c, branding.logo, w, h)

    y = h * 0.72
    _centred(c, w, y, title, "Helvetica-Bold", 32, brand, max_width=text_width)
    y -= 50
    _centred(c, w, y, "This is to certify that", "Helvetica", 18, colors.black)
    y -= 45
    _centred(c, w, y, recipient_name, "Helvetica-Bold", 28, brand, underline=True, max_width=text_width)
    y -= 45
    _centred(c, w, y, "has successfully completed the course", "Helvetica", 18, colors.black)
    y -= 40
    _centred(c, w, y, course_title, "Helvetica-Bold", 24, brand, underline=True, max_width=text_width)
    y -= 50
    _centred(c, w, y, f"Score: {score_line}", "Helvetica", 14, colors.black)
    y -= 25
    _centred(c, w, y, f"Certificate Number: {certificate_no}", "Helvetica", 12, colors.black)
    y -= 40
    _centred(c, w, y, f"Issued on: {issue_date}", "Helvetica", 10, colors.black)
    y -= 18
    _centred(c, w, y, issuer_name, "Helvetica-Bold", 10, brand)

    # QR bottom-right, inside the border
    qr_x = w - MARGIN - 20 - QR_SIZE
    qr_y = MARGIN + 20
    c.drawImage(ImageReader(io.BytesIO(qr_png)), qr_x, qr_y, QR_SIZE, QR_SIZE, mask="auto")
    c.setFont("Helvetica", 8)
    c.setFillColor(colors.black)
    c.drawCentredString(qr_x + QR_SIZE / 2, qr_y + QR_SIZE + 4, "Scan to verify")

    c.showPage()
    c.save()
    return buf.getvalue()


def _merge_onto_background(background_pdf: str, page_bytes: bytes) -> bytes:
    """Loads the template PDF and merges the drawn page onto page 1."""
    template_page = PdfReader(background_pdf).pages[0]
    overlay_page = PdfReader(io.BytesIO(page_bytes)).pages[0]
    template_page.merge_page(overlay_page)

    out = PdfWriter()
    out.add_page(template_page)
    final_buf = io.BytesIO()
    out.write(final_buf)
    return final_buf.getvalue()


def build_certificate_pdf(
    *,
    recipient_name: str,
    course_title: str,
    score: int,
    max_score: int,
    certificate_no: str,
    issued_at: datetime,
    qr_png: bytes,
    branding: Branding | None = None,
    design: TemplateDesign | None = None,
) -> bytes:
    """
    Single-page certificate PDF. Returns final PDF bytes.

    When the template points at a background PDF, the page is drawn at the
    background's size and merged onto it.
    """
    branding = branding or Branding()
    design = design or TemplateDesign()

    page_size = landscape(LETTER) if design.orientation == "landscape" else LETTER
    background = design.background_pdf
    if background:
        if not os.path.isfile(background):
            raise FileNotFoundError(f"Template background not found: {background}")
        box = PdfReader(background).pages[0].mediabox
        page_size = (float(box.width), float(box.height))

    page = _make_certificate_page(
        page_size=page_size,
        title=design.title,
        recipient_name=recipient_name,
        course_title=course_title,
        score_line=format_score(score, max_score),
        certificate_no=certificate_no,
        issue_date=issued_at.strftime("%d %b %Y"),
        issuer_name=branding.company_name,
        qr_png=qr_png,
        branding=branding,
    )

    if background:
        return _merge_onto_background(background, page)
    return page
