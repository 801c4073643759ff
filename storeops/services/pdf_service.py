"""Single-item bonus PDF (fpdf2).

A CJK TrueType font is embedded when ``PDF_FONT_PATH`` is configured;
otherwise the core Helvetica font is used, characters outside Latin-1
are replaced, and every render logs a warning.
"""

import logging
import os
from datetime import datetime

from flask import current_app
from fpdf import FPDF
from fpdf.enums import XPos, YPos

logger = logging.getLogger(__name__)

FONT_FAMILY = "cjk"
FALLBACK_FAMILY = "helvetica"
COL_WIDTHS = (50, 80, 50)
TABLE_HEADERS = ("員工編號", "姓名", "單品獎金")
ROW_HEIGHT = 8


class BonusReportPDF(FPDF):
    """Repeats the table header on every page after the first and numbers pages."""

    def __init__(self, font_path=None):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.base_family = FALLBACK_FAMILY
        if font_path:
            self.add_font(FONT_FAMILY, "", font_path)
            self.base_family = FONT_FAMILY
        self.print_date = datetime.now().strftime("%Y/%m/%d")
        self.table_started = False

    def safe_text(self, value) -> str:
        value = "" if value is None else str(value)
        if self.base_family == FALLBACK_FAMILY:
            return value.encode("latin-1", "replace").decode("latin-1")
        return value

    def header(self):
        if self.table_started:
            self.table_header()

    def footer(self):
        self.set_y(-15)
        self.set_font(self.base_family, "", 8)
        self.set_text_color(120, 120, 120)
        self.cell(0, 10, self.safe_text(f"列印日期: {self.print_date}"), align="L")
        self.set_x(self.l_margin)
        self.cell(0, 10, f"{self.page_no()}/{{nb}}", align="R")

    def table_header(self):
        self.set_font(self.base_family, "", 11)
        self.set_fill_color(53, 74, 95)
        self.set_text_color(255, 255, 255)
        for width, label in zip(COL_WIDTHS, TABLE_HEADERS):
            self.cell(width, ROW_HEIGHT + 2, self.safe_text(label), border=1, align="C", fill=True)
        self.ln()
        self.set_text_color(0, 0, 0)
        self.set_font(self.base_family, "", 10)


def _font_path():
    path = current_app.config.get("PDF_FONT_PATH")
    if not path:
        logger.warning(
            "PDF_FONT_PATH is not set; Chinese text in the PDF will render as '?'"
        )
        return None
    if not os.path.exists(path):
        logger.warning(
            "PDF_FONT_PATH %s does not exist; Chinese text in the PDF will render as '?'", path
        )
        return None
    return path


def _format_amount(value) -> str:
    return f"{round(value or 0):,}"


def generate_single_item_bonus_pdf(rows, store_code, store_name, year_month) -> bytes:
    """Render the store's single-item bonus table for ``year_month`` (YYYYMM)."""
    pdf = BonusReportPDF(font_path=_font_path())
    pdf.alias_nb_pages()
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.add_page()

    title = f"{store_code} {store_name} {year_month[:4]}年{year_month[4:6]}月單品獎金"
    pdf.set_font(pdf.base_family, "", 16)
    pdf.cell(0, 12, pdf.safe_text(title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)

    pdf.table_header()
    pdf.table_started = True

    total = 0
    for row in rows:
        amount = row.get("bonus") or 0
        total += amount
        pdf.cell(COL_WIDTHS[0], ROW_HEIGHT, pdf.safe_text(row.get("employee_code")), border=1, align="C")
        pdf.cell(COL_WIDTHS[1], ROW_HEIGHT, pdf.safe_text(row.get("employee_name")), border=1, align="C")
        pdf.cell(COL_WIDTHS[2], ROW_HEIGHT, _format_amount(amount), border=1, align="R")
        pdf.ln()

    pdf.set_fill_color(235, 235, 235)
    pdf.cell(COL_WIDTHS[0] + COL_WIDTHS[1], ROW_HEIGHT, pdf.safe_text("總計"), border=1, align="C", fill=True)
    pdf.cell(COL_WIDTHS[2], ROW_HEIGHT, _format_amount(total), border=1, align="R", fill=True)
    pdf.ln()
    pdf.table_started = False

    logger.info(
        "Single-item bonus PDF rendered for store %s %s (%d rows)",
        store_code, year_month, len(rows),
    )
    return bytes(pdf.output())
