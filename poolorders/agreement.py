"""
Signed dealer agreement PDF, rendered with ReportLab from the dealer's PNG signature.
"""
import base64
import binascii
import io
import textwrap
from datetime import datetime

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from poolorders.config import settings
from poolorders.errors import ValidationError

SIGNATURE_PREFIX = "data:image/png;base64,"
SIGNATURE_WIDTH = 220
SIGNATURE_X, SIGNATURE_Y = 80, 120
STAMP_COLOR = Color(0.2, 0.2, 0.2)

TERMS = (
    "The Dealer agrees to market and sell fiberglass pools manufactured by the Company within its "
    "territory, to place orders through the dealer portal, and to remit payment according to the "
    "wire instructions provided with each order. Orders enter production only after payment has been "
    "approved. Shipping dates are estimates and are confirmed by the factory assigned to each order."
)


def decode_signature(data_url: str | None) -> bytes:
    if not data_url or not data_url.startswith(SIGNATURE_PREFIX):
        raise ValidationError("Invalid signature")
    try:
        png = base64.b64decode(data_url[len(SIGNATURE_PREFIX):], validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid signature")
    if not png:
        raise ValidationError("Invalid signature")
    return png


def render_signed_agreement(dealer_name: str, signature_png: bytes, signed_at: datetime) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    width, height = letter
    c.setTitle(settings.agreement_title)

    c.setFont("Helvetica-Bold", 15)
    c.drawString(72, height - 72, settings.agreement_title)
    c.setFont("Helvetica", 11)
    c.drawString(72, height - 100, f"Dealer: {dealer_name}")

    y = height - 136
    for line in textwrap.wrap(TERMS, width=90):
        c.drawString(72, y, line)
        y -= 15

    try:
        image = ImageReader(io.BytesIO(signature_png))
        img_w, img_h = image.getSize()
    except Exception:
        raise ValidationError("Invalid signature")
    sig_h = img_h / img_w * SIGNATURE_WIDTH
    c.drawImage(image, SIGNATURE_X, SIGNATURE_Y, width=SIGNATURE_WIDTH, height=sig_h, mask="auto")

    c.setFont("Helvetica", 10)
    c.setFillColor(STAMP_COLOR)
    c.drawString(SIGNATURE_X, SIGNATURE_Y - 18, f"Signed by {dealer_name} on {signed_at:%Y-%m-%d %H:%M} UTC")

    c.showPage()
    c.save()
    return buf.getvalue()
