"""
Landscape PDF export of the aggregated grid.

Layout: title, generation time, filter chips and an accent rule, then a
table whose header band is repeated after every page break.  Footers
("<n> summary records" / "Page X of Y") are stamped in a final pass.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime
from typing import Any

from reportlab.lib.pagesizes import A4, landscape

from qmstats.reports.document import PdfDocument, text_width
from qmstats.reports.views import (PDF_COLUMNS, TITLES, ReportColumn,
                                   build_lines, footer_note)

MARGIN = 32
MIN_COLUMN_WIDTH = 40
FONT_H1 = 15
FONT_SMALL = 8.5
FONT_BODY = 8.5
FONT_TH = 9
FONT_CHIP = 8
PAD_X = 6
HEADER_H = 20
ROW_H = 16
FOOTER_RESERVE = 18
CHIP_H = 16
CHIP_GAP = 6

COLOR = {
    "text": "#141414",
    "muted": "#6B7280",
    "head": "#0F172A",
    "border": "#E5E7EB",
    "zebra": "#FAFAFC",
    "accent": "#1F6FEB",
    "badge": "#EEF4FF",
    "chip_text": "#334155",
    "chip_bg": "#F3F6FF",
}


def scale_columns(columns: list[ReportColumn], table_width: float) -> list[ReportColumn]:
    """Rescale declared widths to *table_width*; the last column absorbs rounding."""
    base = sum(c.width for c in columns)
    if not base or abs(base - table_width) < 1:
        return list(columns)
    ratio = table_width / base
    widths = [max(MIN_COLUMN_WIDTH, math.floor(c.width * ratio)) for c in columns]
    widths[-1] = max(MIN_COLUMN_WIDTH, table_width - sum(widths[:-1]))
    return [replace(c, width=w) for c, w in zip(columns, widths)]


def _cell(key: str, value: Any) -> str:
    if key == "reasons":
        return " • ".join((value or [])[:2])
    return "" if value is None else str(value)


def _draw_chips(doc: PdfDocument, chips: list[str]) -> None:
    if not chips:
        doc.text(doc.left, doc.y, "All records", size=FONT_SMALL, color=COLOR["muted"],
                 width=doc.content_width, align="center")
        doc.move_down(FONT_SMALL * 1.2)
        return

    x = doc.left
    y = doc.y + 6
    for chip in chips:
        w = math.ceil(text_width(chip, "Helvetica", FONT_CHIP)) + 16
        if x + w > doc.right:
            x = doc.left
            y += CHIP_H + 4
        doc.rect(x, y, w, CHIP_H, fill=COLOR["chip_bg"], radius=8)
        doc.text(x + 8, y + 4, chip, size=FONT_CHIP, color=COLOR["chip_text"], width=w - 16)
        x += w + CHIP_GAP
    doc.y = y + CHIP_H + 6


def _draw_report_header(doc: PdfDocument, view: str, chips: list[str], generated_at: datetime) -> None:
    doc.text(doc.left, doc.y, f"QMStats — {TITLES[view]}", font="Helvetica-Bold", size=FONT_H1,
             color=COLOR["head"], width=doc.content_width, align="center")
    doc.move_down(FONT_H1 * 1.2 + 2)
    doc.text(doc.left, doc.y, f"Generated: {generated_at:%Y-%m-%d %H:%M:%S}", size=FONT_SMALL,
             color=COLOR["muted"], width=doc.content_width, align="center")
    doc.move_down(FONT_SMALL * 1.2)
    _draw_chips(doc, chips)
    doc.hline(doc.left, doc.right, doc.y + 8, COLOR["accent"], width=1)
    doc.move_down(14)


def _draw_table_header(doc: PdfDocument, columns: list[ReportColumn]) -> None:
    doc.rect(doc.left, doc.y, doc.content_width, HEADER_H, fill=COLOR["badge"], stroke=COLOR["border"])
    x = doc.left + PAD_X
    for col in columns:
        doc.text(x, doc.y + 5, col.header, font="Helvetica-Bold", size=FONT_TH,
                 color=COLOR["head"], width=col.width - PAD_X * 2, align=col.align)
        x += col.width
    doc.move_down(HEADER_H)


def _draw_rows(doc: PdfDocument, columns: list[ReportColumn], lines: list[dict[str, Any]]) -> None:
    for idx, line in enumerate(lines):
        if doc.ensure_space(ROW_H, reserve=FOOTER_RESERVE):
            _draw_table_header(doc, columns)
        if idx % 2 == 0:
            doc.rect(doc.left, doc.y, doc.content_width, ROW_H, fill=COLOR["zebra"])
        x = doc.left + PAD_X
        for col in columns:
            doc.text(x, doc.y + 3, _cell(col.key, line.get(col.key)), size=FONT_BODY,
                     color=COLOR["text"], width=col.width - PAD_X * 2, align=col.align)
            x += col.width
        doc.hline(doc.left, doc.right, doc.y + ROW_H, COLOR["border"], width=0.3)
        doc.move_down(ROW_H)


def _footer_stamp(note: str):
    def stamp(doc: PdfDocument, page_number: int, page_count: int) -> None:
        half = doc.content_width / 2
        doc.hline(doc.left, doc.right, doc.margin - 12, COLOR["border"])
        doc.hline(doc.left, doc.right, doc.bottom + 10, COLOR["border"])
        doc.text(doc.left, doc.bottom + 14, note, size=8, color=COLOR["muted"], width=half)
        doc.text(doc.left + half, doc.bottom + 14, f"Page {page_number} of {page_count}",
                 size=8, color=COLOR["muted"], width=half, align="right")

    return stamp


def render_hive_pdf(
    view: str,
    stats: list[dict[str, Any]],
    chips: list[str],
    generated_at: datetime | None = None,
) -> bytes:
    """Render *stats* for *view* and return the PDF bytes."""
    doc = PdfDocument(landscape(A4), margin=MARGIN, title=f"QMStats — {TITLES[view]}")
    columns = scale_columns(PDF_COLUMNS[view], doc.content_width)
    lines = build_lines(view, stats)

    _draw_report_header(doc, view, chips, generated_at or datetime.now())
    _draw_table_header(doc, columns)
    _draw_rows(doc, columns, lines)

    doc.finalize(_footer_stamp(footer_note(view, len(lines))))
    return doc.to_bytes()
