"""Spreadsheet export of the aggregated grid (openpyxl)."""

from __future__ import annotations

import io
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from qmstats.reports.views import XLSX_COLUMNS, build_lines

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill(start_color="0F172A", end_color="0F172A", fill_type="solid")


def _cell_value(key: str, value: Any) -> Any:
    if key == "reasons":
        return " | ".join(value or [])
    return value


def render_workbook(view: str, stats: list[dict[str, Any]]) -> bytes:
    """Build a one-sheet workbook for *view* and return the xlsx bytes."""
    columns = XLSX_COLUMNS[view]
    wb = Workbook()
    ws = wb.active
    ws.title = view.capitalize()

    ws.append([c.header for c in columns])
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
    ws.freeze_panes = "A2"

    for line in build_lines(view, stats):
        ws.append([_cell_value(c.key, line.get(c.key)) for c in columns])

    for idx, col in enumerate(columns, start=1):
        letter = get_column_letter(idx)
        ws.column_dimensions[letter].width = col.width
        if col.key == "reasons":
            for (cell,) in ws.iter_rows(min_row=2, min_col=idx, max_col=idx):
                cell.alignment = Alignment(wrap_text=True, vertical="top")

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
