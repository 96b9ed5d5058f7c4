"""
Two-pass PDF document builder on top of the reportlab canvas.

Layout code works top-down (``y`` grows towards the bottom of the page)
and every drawing primitive is recorded against the current page instead
of being painted immediately.  Once layout is complete, ``finalize`` runs
a stamping callback over every recorded page with the final page count,
and ``to_bytes`` replays all pages onto a real canvas.
"""

from __future__ import annotations

import io
from collections.abc import Callable

from reportlab.lib.colors import HexColor
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

DrawOp = Callable[[canvas.Canvas], None]
PageHook = Callable[["PdfDocument"], None]
FooterStamp = Callable[["PdfDocument", int, int], None]

ELLIPSIS = "…"


def text_width(text: str, font: str, size: float) -> float:
    return pdfmetrics.stringWidth(text, font, size)


def fit_text(text: str, font: str, size: float, max_width: float) -> str:
    """Trim *text* with a trailing ellipsis so it fits in *max_width*."""
    if max_width <= 0:
        return ""
    if text_width(text, font, size) <= max_width:
        return text
    trimmed = text
    while trimmed and text_width(trimmed + ELLIPSIS, font, size) > max_width:
        trimmed = trimmed[:-1]
    return (trimmed.rstrip() + ELLIPSIS) if trimmed else ""


class PdfDocument:
    def __init__(
        self,
        pagesize: tuple[float, float],
        margin: float,
        title: str = "",
        on_new_page: PageHook | None = None,
    ) -> None:
        self.width, self.height = pagesize
        self.margin = margin
        self.title = title
        self._on_new_page = on_new_page
        self._pages: list[list[DrawOp]] = []
        self._target = 0
        self._finalized = False
        self.y = margin
        self.new_page(run_hook=False)

    # ── Geometry ──────────────────────────────────────────────────
    @property
    def left(self) -> float:
        return self.margin

    @property
    def right(self) -> float:
        return self.width - self.margin

    @property
    def content_width(self) -> float:
        return self.right - self.left

    @property
    def bottom(self) -> float:
        """Lowest printable ``y`` (top-down)."""
        return self.height - self.margin

    @property
    def page_count(self) -> int:
        return len(self._pages)

    # ── Page flow ─────────────────────────────────────────────────
    def new_page(self, run_hook: bool = True) -> None:
        if self._finalized:
            raise RuntimeError("document already finalized")
        self._pages.append([])
        self._target = len(self._pages) - 1
        self.y = self.margin
        if run_hook and self._on_new_page is not None:
            self._on_new_page(self)

    def ensure_space(self, height: float, reserve: float = 0) -> bool:
        """Break the page if *height* would cross ``bottom - reserve``."""
        if self.y + height > self.bottom - reserve:
            self.new_page()
            return True
        return False

    def move_down(self, amount: float) -> None:
        self.y += amount

    # ── Primitives (top-down coordinates) ─────────────────────────
    def _record(self, op: DrawOp) -> None:
        self._pages[self._target].append(op)

    def _pdf_y(self, y: float) -> float:
        return self.height - y

    def text(
        self,
        x: float,
        top: float,
        value: object,
        font: str = "Helvetica",
        size: float = 9,
        color: str = "#000000",
        width: float | None = None,
        align: str = "left",
    ) -> None:
        """Draw one line whose glyph box starts at *top*; clipped to *width*."""
        s = "" if value is None else str(value)
        if width is not None:
            s = fit_text(s, font, size, width)
        baseline = self._pdf_y(top + pdfmetrics.getAscent(font, size))
        if align == "right" and width is not None:
            anchor = x + width
        elif align == "center" and width is not None:
            anchor = x + width / 2
        else:
            anchor = x

        def op(c: canvas.Canvas) -> None:
            c.setFont(font, size)
            c.setFillColor(HexColor(color))
            if align == "right" and width is not None:
                c.drawRightString(anchor, baseline, s)
            elif align == "center" and width is not None:
                c.drawCentredString(anchor, baseline, s)
            else:
                c.drawString(anchor, baseline, s)

        self._record(op)

    def rect(
        self,
        x: float,
        top: float,
        width: float,
        height: float,
        fill: str | None = None,
        stroke: str | None = None,
        line_width: float = 0.5,
        radius: float = 0,
    ) -> None:
        bottom = self._pdf_y(top + height)

        def op(c: canvas.Canvas) -> None:
            c.saveState()
            if fill:
                c.setFillColor(HexColor(fill))
            if stroke:
                c.setStrokeColor(HexColor(stroke))
                c.setLineWidth(line_width)
            if radius:
                c.roundRect(x, bottom, width, height, radius,
                            stroke=1 if stroke else 0, fill=1 if fill else 0)
            else:
                c.rect(x, bottom, width, height,
                       stroke=1 if stroke else 0, fill=1 if fill else 0)
            c.restoreState()

        self._record(op)

    def hline(self, x1: float, x2: float, y: float, color: str, width: float = 0.5) -> None:
        py = self._pdf_y(y)

        def op(c: canvas.Canvas) -> None:
            c.saveState()
            c.setStrokeColor(HexColor(color))
            c.setLineWidth(width)
            c.line(x1, py, x2, py)
            c.restoreState()

        self._record(op)

    # ── Output ────────────────────────────────────────────────────
    def finalize(self, stamp: FooterStamp | None = None) -> None:
        """Run *stamp(doc, page_number, page_count)* on every recorded page."""
        if self._finalized:
            return
        total = len(self._pages)
        if stamp is not None:
            for index in range(total):
                self._target = index
                stamp(self, index + 1, total)
        self._target = total - 1
        self._finalized = True

    def to_bytes(self) -> bytes:
        if not self._finalized:
            self.finalize()
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(self.width, self.height))
        if self.title:
            c.setTitle(self.title)
        c.setAuthor("QMStats")
        for ops in self._pages:
            for op in ops:
                op(c)
            c.showPage()
        c.save()
        return buf.getvalue()
