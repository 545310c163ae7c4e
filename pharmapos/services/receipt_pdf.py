from __future__ import annotations

import os

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from pharmapos.config import settings
from pharmapos.constants import DISCOUNT_NONE, VAT_RATE
from pharmapos.db.sqlite import get_sale
from pharmapos.utils.formatters import money


def generate_receipt_pdf(sale_id: int) -> str:
    sale, items = get_sale(sale_id)
    if sale is None:
        raise LookupError(f"sale {sale_id} not found")

    os.makedirs(settings.export_dir, exist_ok=True)
    path = os.path.join(settings.export_dir, f"receipt_{sale['invoice_number']}.pdf")

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"RECEIPT {sale['invoice_number']}")
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(40, y, f"Branch: {sale['branch_name'] or '-'}")
    y -= 16
    c.drawString(40, y, f"Date: {sale['created_at']} UTC")
    y -= 16
    c.drawString(40, y, f"Payment: {sale['payment_method']} ({sale['payment_status']})")
    y -= 24

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(290, y, "Qty")
    c.drawString(340, y, "Price")
    c.drawString(410, y, "Disc.")
    c.drawString(480, y, "Amount")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for it in items:
        c.drawString(40, y, str(it["name"])[:40])
        c.drawRightString(310, y, str(it["quantity"]))
        c.drawRightString(390, y, str(it["price"]))
        c.drawRightString(460, y, str(it["discount"]))
        c.drawRightString(550, y, str(it["line_total"]))
        y -= 14
        if y < 120:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    c.drawRightString(550, y, f"Subtotal: {money(sale['subtotal'])}")
    y -= 14
    if sale["discount_type"] != DISCOUNT_NONE:
        c.drawRightString(550, y, f"Discount ({sale['discount_type']}): -{money(sale['discount_amount'])}")
        y -= 14
    c.drawRightString(550, y, f"VAT {VAT_RATE * 100:.0f}%: {money(sale['vat_amount'])}")
    y -= 18
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"TOTAL: {money(sale['total_amount'])}")

    c.save()
    return path
