"""Invoice PDF layout.

Draws an invoice onto A4 pages with reportlab's canvas. A cursor (``self.y``)
walks down the page; before each block whose height is known the layout checks
the remaining space and starts a new page when the block would cross the
bottom margin.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from invoice_builder.config import DEFAULT_UNIT
from invoice_builder.model import Invoice, LineItem, MerchantConfig

W, H = A4  # 595.27 x 841.89
MARGIN = 15 * mm
CONTENT_W = W - 2 * MARGIN

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
LEADING_RATIO = 1.25

RULE_COLOR = HexColor("#E6E6E6")
TOTAL_FILL = HexColor("#F0F0F0")
TEXT_COLOR = HexColor("#1F1F1F")

MERCHANT_BLOCK_W = 60 * mm
COLUMN_SHARES = (0.45, 0.15, 0.20, 0.20)  # item / qty / unit price / amount
ROW_GAP = 2 * mm
TOTALS_BLOCK_H = 30 * mm
FOOTER_H = 20 * mm
PAGE_BODY_H = H - 2 * MARGIN
MERCHANT_FIELD_MAX_LINES = 3

CURRENCY = "Rs. "
THANK_YOU = "Thank you for your business!"


def format_money(value: float) -> str:
    return f"{CURRENCY}{value:.2f}"


def format_quantity(value: float) -> str:
    return f"{value:g}"


def format_long_date(epoch_ms: int) -> str:
    """Return e.g. ``19 October 2026``."""
    dt = datetime.fromtimestamp(epoch_ms / 1000)
    return f"{dt.day} {dt.strftime('%B %Y')}"


def wrap_text(text: str, font: str, size: float, max_width: float) -> List[str]:
    """Word-wrap ``text`` so that no line is wider than ``max_width``.

    Words that are wider than the column on their own are split by character.
    """
    lines: List[str] = []
    current = ""
    for word in text.split():
        test = current + (" " if current else "") + word
        if pdfmetrics.stringWidth(test, font, size) <= max_width:
            current = test
            continue
        if current:
            lines.append(current)
            current = ""
        while pdfmetrics.stringWidth(word, font, size) > max_width and len(word) > 1:
            cut = len(word) - 1
            while cut > 1 and pdfmetrics.stringWidth(word[:cut], font, size) > max_width:
                cut -= 1
            lines.append(word[:cut])
            word = word[cut:]
        current = word
    if current:
        lines.append(current)
    return lines


def leading(size: float) -> float:
    return size * LEADING_RATIO


def truncate_lines(
    lines: List[str], max_lines: int, font: str, size: float, max_width: float
) -> List[str]:
    """Keep at most ``max_lines``, ending the last kept line with an ellipsis."""
    if len(lines) <= max_lines:
        return lines
    kept = lines[:max_lines]
    last = kept[-1]
    while last and pdfmetrics.stringWidth(last + "...", font, size) > max_width:
        last = last[:-1]
    kept[-1] = last.rstrip() + "..."
    return kept


@dataclass(slots=True)
class RowPlacement:
    """Where a line-item row landed: page number (1-based) and vertical span."""

    item_id: str
    page: int
    top: float
    bottom: float


class InvoiceDocument:
    def __init__(self, invoice: Invoice, merchant: Optional[MerchantConfig] = None) -> None:
        self.invoice = invoice
        self.merchant = merchant or MerchantConfig()
        self._buffer = io.BytesIO()
        self.c = canvas.Canvas(self._buffer, pagesize=A4)
        self.c.setTitle(f"Invoice {invoice.number}")
        self.c.setAuthor(self.merchant.business_name or "Invoice Builder")
        self.page_count = 1
        self.y = H - MARGIN
        self.rows: List[RowPlacement] = []
        widths = [CONTENT_W * share for share in COLUMN_SHARES]
        self.col_widths = widths
        self.col_x = [MARGIN + sum(widths[:i]) for i in range(len(widths))]

    # ─── DRAWING PRIMITIVES ───

    def draw_text(self, text, x, y, font=FONT, size=10, align="left"):
        self.c.saveState()
        self.c.setFont(font, size)
        self.c.setFillColor(TEXT_COLOR)
        if align == "center":
            self.c.drawCentredString(x, y, text)
        elif align == "right":
            self.c.drawRightString(x, y, text)
        else:
            self.c.drawString(x, y, text)
        self.c.restoreState()

    def draw_line(self, y, color=RULE_COLOR, width=0.5):
        self.c.saveState()
        self.c.setStrokeColor(color)
        self.c.setLineWidth(width)
        self.c.line(MARGIN, y, W - MARGIN, y)
        self.c.restoreState()

    def draw_rect(self, x, y, w, h, fill):
        self.c.saveState()
        self.c.setFillColor(fill)
        self.c.rect(x, y, w, h, fill=1, stroke=0)
        self.c.restoreState()

    def draw_lines(self, lines, x, top, width, font=FONT, size=10, align="left"):
        """Draw pre-wrapped lines hanging from ``top``; return the block height."""
        if align == "center":
            anchor = x + width / 2
        elif align == "right":
            anchor = x + width
        else:
            anchor = x
        for i, line in enumerate(lines):
            self.draw_text(line, anchor, top - size - i * leading(size), font, size, align)
        return len(lines) * leading(size)

    # ─── PAGE INFRASTRUCTURE ───

    def new_page(self):
        self.c.showPage()
        self.page_count += 1
        self.y = H - MARGIN

    def check_space(self, needed):
        """Start a new page if a block of height ``needed`` does not fit."""
        if self.y - needed < MARGIN:
            self.new_page()

    def paragraph(self, text, font=FONT, size=10, gap=0.0, x=MARGIN, width=CONTENT_W, align="left"):
        lines = wrap_text(text, font, size, width)
        if not lines:
            return
        height = len(lines) * leading(size)
        if height <= PAGE_BODY_H:
            self.check_space(height)
            self.draw_lines(lines, x, self.y, width, font, size, align)
            self.y -= height + gap
            return
        # Taller than a page: flow line by line
        for line in lines:
            self.check_space(leading(size))
            self.draw_lines([line], x, self.y, width, font, size, align)
            self.y -= leading(size)
        self.y -= gap

    # ─── SECTIONS ───

    def draw_header(self):
        top = self.y
        title_h = self.draw_lines(["INVOICE"], MARGIN, top, CONTENT_W, FONT_BOLD, 24)

        m = self.merchant
        merchant_lines = [(m.business_name or "Your Business", FONT_BOLD, 10)]
        for value in (m.address1, m.address2):
            if value:
                merchant_lines.append((value, FONT, 9))
        if m.phone:
            merchant_lines.append((f"Ph: {m.phone}", FONT, 9))
        if m.email:
            merchant_lines.append((m.email, FONT, 9))
        if m.tax_id:
            merchant_lines.append((f"GST: {m.tax_id}", FONT, 9))

        block_x = W - MARGIN - MERCHANT_BLOCK_W
        merchant_y = top
        for text, font, size in merchant_lines:
            lines = truncate_lines(
                wrap_text(text, font, size, MERCHANT_BLOCK_W),
                MERCHANT_FIELD_MAX_LINES,
                font,
                size,
                MERCHANT_BLOCK_W,
            )
            merchant_y -= self.draw_lines(lines, block_x, merchant_y, MERCHANT_BLOCK_W, font, size, "right")

        self.y = min(top - title_h, merchant_y) - 6 * mm

        invoice = self.invoice
        self.paragraph(f"Invoice #{invoice.number}", gap=1.5 * mm)
        self.paragraph(f"Date: {format_long_date(invoice.created_at)}", gap=6 * mm)

    def draw_customer(self):
        self.draw_line(self.y)
        self.y -= 6 * mm
        invoice = self.invoice
        self.paragraph("Bill To:", FONT_BOLD, 10, gap=1.5 * mm)
        self.paragraph(invoice.customer_name, FONT_BOLD, 11, gap=1 * mm)
        if invoice.customer_phone:
            self.paragraph(invoice.customer_phone, gap=1 * mm)
        if invoice.customer_address:
            self.paragraph(invoice.customer_address, gap=1 * mm)
        self.y -= 4 * mm

    def draw_table_header(self):
        size = 10
        needed = 6 * mm + leading(size) + 6 * mm
        self.check_space(needed)
        self.draw_line(self.y)
        self.y -= 4 * mm
        headers = (("Item", "left"), ("Qty", "center"), ("Price", "right"), ("Amount", "right"))
        for (label, align), x, w in zip(headers, self.col_x, self.col_widths):
            self.draw_lines([label], x, self.y, w, FONT_BOLD, size, align)
        self.y -= leading(size) + 1.5 * mm
        self.draw_line(self.y)
        self.y -= 3 * mm

    def row_cells(self, item: LineItem):
        size = 10
        texts = (
            (item.product_name, "left"),
            (f"{format_quantity(item.quantity)} {item.unit or DEFAULT_UNIT}", "center"),
            (format_money(item.unit_price), "right"),
            (format_money(item.amount), "right"),
        )
        return [
            (wrap_text(text, FONT, size, w) or [""], align)
            for (text, align), w in zip(texts, self.col_widths)
        ]

    def draw_row(self, item: LineItem):
        size = 10
        line_h = leading(size)
        cells = self.row_cells(item)
        line_count = max(len(lines) for lines, _ in cells)
        height = line_count * line_h + ROW_GAP
        if height <= PAGE_BODY_H:
            self.check_space(height)
            self.draw_row_slice(item, cells, 0, line_count, height)
            return

        # Taller than a page: continue the row on following pages
        start = 0
        while start < line_count:
            fit = int((self.y - MARGIN - ROW_GAP) // line_h)
            if fit < 1:
                self.new_page()
                continue
            end = min(line_count, start + fit)
            self.draw_row_slice(item, cells, start, end, (end - start) * line_h + ROW_GAP)
            start = end

    def draw_row_slice(self, item, cells, start, end, height):
        top = self.y
        for (lines, align), x, w in zip(cells, self.col_x, self.col_widths):
            self.draw_lines(lines[start:end], x, top, w, FONT, 10, align)
        self.y -= height
        self.rows.append(RowPlacement(item.item_id, self.page_count, top, self.y))

    def draw_totals(self):
        self.check_space(TOTALS_BLOCK_H)
        self.draw_line(self.y)
        self.y -= 6 * mm

        block_w = CONTENT_W * 0.4
        label_x = W - MARGIN - block_w
        value_w = CONTENT_W * 0.2
        value_x = W - MARGIN - value_w

        self.draw_lines(["Subtotal:"], label_x, self.y, block_w, FONT_BOLD, 11)
        self.draw_lines([format_money(self.invoice.subtotal)], value_x, self.y, value_w, FONT, 11, "right")
        self.y -= leading(11) + 3 * mm

        total_h = leading(14) + 4 * mm
        self.draw_rect(label_x - 5, self.y - total_h, block_w + 5, total_h, TOTAL_FILL)
        self.draw_lines(["TOTAL:"], label_x, self.y - 2 * mm, block_w, FONT_BOLD, 14)
        self.draw_lines([format_money(self.invoice.total)], value_x, self.y - 2 * mm, value_w, FONT_BOLD, 14, "right")
        self.y -= total_h + 4 * mm

    def draw_footer(self):
        self.check_space(FOOTER_H)
        self.y = min(self.y, MARGIN + FOOTER_H)  # Pin to the lower part of the page
        self.draw_line(self.y)
        self.draw_lines([THANK_YOU], MARGIN, self.y - 4 * mm, CONTENT_W, FONT, 10, "center")
        self.y = MARGIN

    def render(self) -> bytes:
        self.draw_header()
        self.draw_customer()
        self.draw_table_header()
        for item in self.invoice.line_items:
            self.draw_row(item)
        self.draw_totals()
        self.draw_footer()
        self.c.save()
        return self._buffer.getvalue()


def render_invoice(invoice: Invoice, merchant: Optional[MerchantConfig] = None) -> bytes:
    """Return the invoice as PDF bytes."""
    return InvoiceDocument(invoice, merchant).render()


__all__ = [
    "InvoiceDocument",
    "RowPlacement",
    "format_long_date",
    "format_money",
    "render_invoice",
    "truncate_lines",
    "wrap_text",
]
