"""
Single-stat PDF (portrait Letter).

Sections are always emitted in this order: identity header, summary
counters, file-creation details, attachment details, reject details,
checklist totals, top reject reasons.  Empty sections print "None".
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any

from reportlab.lib.pagesizes import LETTER

from qmstats.reports.document import PdfDocument, text_width

MARGIN = 40
ROW_H = 22
REASON_LINE_H = 14
MAX_REASON_LINES = 2

COLOR = {
    "text": "#222222",
    "muted": "#666666",
    "border": "#DDDDDD",
    "heading": "#111111",
    "chip": "#F5F7FA",
    "zebra": "#FBFBFD",
    "brand": "#1F6FEB",
    "badge": "#EEF6FF",
}

_FLAGS = ("natp", "rtd", "coi", "none")


# ── Derived figures ─────────────────────────────────────────────────
def _valid(row: dict[str, Any]) -> bool:
    return (row.get("value") or 0) > 0


def format_duration(start: str | None, end: str | None) -> str:
    def minutes(t: str | None) -> int | None:
        if not t:
            return None
        hh, _, mm = t.partition(":")
        try:
            return int(hh) * 60 + int(mm or 0)
        except ValueError:
            return None

    s, e = minutes(start), minutes(end)
    if s is None or e is None:
        return "-"
    span = (e - s) % 1440
    return f"{span // 60}h {span % 60:02d}m"


def checks_label(row: dict[str, Any]) -> str:
    return ", ".join(f.upper() for f in _FLAGS if row.get(f)) or "-"


def top_reasons(reject_rows: list[dict[str, Any]]) -> list[tuple[str, int]]:
    """Reason frequencies, most frequent first; ties keep first-seen order."""
    counter: Counter[str] = Counter()
    for row in reject_rows:
        for reason in row.get("reasons") or []:
            key = str(reason or "").strip()
            if key:
                counter[key] += 1
    return counter.most_common()


def reason_lines(reasons: list[str]) -> list[str]:
    """Bullet lines for a reject row; at most two, the last noting hidden ones."""
    bullets = [f"• {r}" for r in (reasons or ["-"])]
    if len(bullets) <= MAX_REASON_LINES:
        return bullets
    hidden = len(bullets) - MAX_REASON_LINES
    visible = bullets[:MAX_REASON_LINES]
    visible[-1] = f"{visible[-1]} … ({hidden} more)"
    return visible


def summary_figures(stat: dict[str, Any]) -> dict[str, int]:
    fcs = stat.get("fileCreationRows") or []
    atts = stat.get("attachmentsRows") or []
    rejects = stat.get("rejectRows") or []
    mo = stat["mailOpening"]

    def fc(category: str, urgency: str) -> int:
        return sum(1 for r in fcs if r["category"] == category and r["urgency"] == urgency and _valid(r))

    figures = {
        "fc_ind_reg": fc("individual", "regular"),
        "fc_ind_urg": fc("individual", "urgent"),
        "fc_fam_reg": fc("family", "regular"),
        "fc_fam_urg": fc("family", "urgent"),
        "at_reg": sum(1 for r in atts if r["urgency"] == "regular" and _valid(r)),
        "at_urg": sum(1 for r in atts if r["urgency"] == "urgent" and _valid(r)),
        "rj_total": sum(1 for r in rejects if _valid(r)),
        # Every mail-opening counter except the envelope total
        "total_processed": sum(v for k, v in mo.items() if k != "totalEnvelopes"),
    }
    figures["fc_total"] = (
        figures["fc_ind_reg"] + figures["fc_ind_urg"] + figures["fc_fam_reg"] + figures["fc_fam_urg"]
    )
    figures["at_total"] = figures["at_reg"] + figures["at_urg"]
    for flag in _FLAGS:
        figures[f"chk_{flag}"] = sum(1 for r in (*fcs, *atts, *rejects) if r.get(flag))
    return figures


# ── Layout helpers ──────────────────────────────────────────────────
def _divider(doc: PdfDocument) -> None:
    doc.hline(doc.left, doc.right, doc.y + 8, COLOR["border"])
    doc.move_down(16)


def _heading(doc: PdfDocument, text: str) -> None:
    # Keep a heading with at least its first table row
    doc.ensure_space(13 * 1.2 + 10 + ROW_H * 2)
    doc.move_down(5)
    doc.text(doc.left, doc.y, text, font="Helvetica-Bold", size=13, color=COLOR["heading"],
             width=doc.content_width)
    doc.move_down(13 * 1.2 + 2)
    doc.hline(doc.left, doc.right, doc.y, COLOR["border"])
    doc.move_down(8)


def _none(doc: PdfDocument) -> None:
    doc.ensure_space(14)
    doc.text(doc.left, doc.y, "None", font="Helvetica-Oblique", size=10, color=COLOR["muted"])
    doc.move_down(20)


def _chips(doc: PdfDocument, items: list[tuple[str, object]]) -> None:
    gap, h = 8, 20
    x, y = doc.left, doc.y
    for label, value in items:
        txt = f"{label}: {'-' if value is None else value}"
        w = text_width(txt, "Helvetica", 10) + 16
        if x + w > doc.right:
            x = doc.left
            y += h + 8
        if y + h > doc.bottom:
            doc.new_page()
            x, y = doc.left, doc.y
        doc.rect(x, y, w, h, fill=COLOR["chip"], stroke=COLOR["border"], radius=6)
        doc.text(x + 8, y + 5, txt, size=10, color=COLOR["text"])
        x += w + gap
    doc.y = y + 24


def _table_header(doc: PdfDocument, columns: list[tuple[str, str, float]], height: float = ROW_H) -> None:
    doc.rect(doc.left, doc.y, doc.content_width, height, fill=COLOR["badge"])
    x = doc.left
    for _key, label, width in columns:
        doc.text(x + 6, doc.y + 6, label, font="Helvetica-Bold", size=10,
                 color=COLOR["heading"], width=width - 12)
        x += width
    doc.hline(doc.left, doc.right, doc.y + height, COLOR["border"])
    doc.move_down(height)


def _table(doc: PdfDocument, columns: list[tuple[str, str, float]], rows: list[dict[str, Any]]) -> None:
    _table_header(doc, columns)
    for idx, row in enumerate(rows):
        doc.ensure_space(ROW_H)
        if idx % 2 == 0:
            doc.rect(doc.left, doc.y, doc.content_width, ROW_H, fill=COLOR["zebra"])
        x = doc.left
        for key, _label, width in columns:
            doc.text(x + 6, doc.y + 6, row.get(key, ""), size=10, color=COLOR["text"], width=width - 12)
            x += width
        doc.hline(doc.left, doc.right, doc.y + ROW_H, COLOR["border"])
        doc.move_down(ROW_H)
    doc.move_down(10)


def _rejects_table(doc: PdfDocument, rows: list[dict[str, Any]]) -> None:
    value_w, row_w, checks_w = 120, 70, 130
    reasons_w = doc.content_width - (value_w + row_w + checks_w)
    columns = [
        ("value", "Application #", value_w),
        ("row", "Row", row_w),
        ("checks", "Checks", checks_w),
        ("reasons", "Reasons", reasons_w),
    ]
    _table_header(doc, columns, height=24)

    for idx, row in enumerate(rows):
        lines = reason_lines(row.get("reasons") or [])
        row_h = max(ROW_H, 8 + max(MAX_REASON_LINES, len(lines)) * REASON_LINE_H)
        doc.ensure_space(row_h)
        if idx % 2 == 0:
            doc.rect(doc.left, doc.y, doc.content_width, row_h, fill=COLOR["zebra"])

        x = doc.left
        for key, _label, width in columns[:3]:
            doc.text(x + 6, doc.y + 6, row.get(key, ""), size=10, color=COLOR["text"], width=width - 12)
            x += width
        ry = doc.y + 6
        for line in lines:
            doc.text(x + 6, ry, line, size=10, color=COLOR["text"], width=reasons_w - 12)
            ry += REASON_LINE_H

        doc.hline(doc.left, doc.right, doc.y + row_h, COLOR["border"])
        doc.move_down(row_h)
    doc.move_down(10)


def _footer_stamp(stat_id: int):
    def stamp(doc: PdfDocument, page_number: int, page_count: int) -> None:
        doc.hline(doc.left, doc.right, doc.bottom + 8, COLOR["border"])
        doc.text(doc.left, doc.bottom + 12, f"Generated by QMStats · Report ID: {stat_id}",
                 size=9, color=COLOR["muted"], width=doc.content_width / 2)
        doc.text(doc.left + doc.content_width / 2, doc.bottom + 12, f"Page {page_number} of {page_count}",
                 size=9, color=COLOR["muted"], width=doc.content_width / 2, align="right")

    return stamp


# ── Entry point ─────────────────────────────────────────────────────
def render_stat_pdf(stat: dict[str, Any], generated_at: datetime | None = None) -> bytes:
    """Render a full stat (as returned by ``fetch_full_stat``) to PDF bytes."""
    owner = stat.get("user") or {}
    figures = summary_figures(stat)
    mo = stat["mailOpening"]
    doc = PdfDocument(LETTER, margin=MARGIN, title=f"QMStats stat {stat['id']}")

    # Identity header
    doc.text(doc.left, doc.y, "QMStats — Daily Stat Summary", font="Helvetica-Bold", size=18,
             color=COLOR["brand"], width=doc.content_width, align="center")
    doc.move_down(18 * 1.2 + 2)
    generated = generated_at or datetime.now()
    doc.text(doc.left, doc.y, f"Generated: {generated:%Y-%m-%d %H:%M:%S}", size=10,
             color=COLOR["muted"], width=doc.content_width, align="center")
    doc.move_down(12)
    _divider(doc)

    full_name = owner.get("name") or ""
    doc.text(doc.left, doc.y, full_name, font="Helvetica-Bold", size=12, color=COLOR["heading"])
    name_w = text_width(full_name, "Helvetica-Bold", 12)
    doc.text(doc.left + name_w, doc.y, f"  <{owner.get('email', '')}>", size=12, color=COLOR["muted"])
    doc.move_down(18)

    created = stat.get("created_at")
    _chips(doc, [
        ("Stat ID", stat["id"]),
        ("Date", stat.get("date")),
        ("Start", stat.get("start_time") or "-"),
        ("End", stat.get("end_time") or "-"),
        ("Duration", format_duration(stat.get("start_time"), stat.get("end_time"))),
        ("Created", created.strftime("%Y-%m-%d %H:%M") if isinstance(created, datetime) else "-"),
    ])

    # Summary counters
    _heading(doc, "Summary — Mail Opening")
    _table(doc, [("label", "Item", 220), ("count", "Count", 100)], [
        {"label": "Total Envelopes", "count": mo["totalEnvelopes"]},
        {"label": "File Creation", "count": mo["fileCreation"]},
        {"label": "Urgent File Creation", "count": mo["urgentFileCreation"]},
        {"label": "Attachments", "count": mo["attachment"]},
        {"label": "Urgent Attachments", "count": mo["urgentAttachment"]},
        {"label": "Rejects", "count": mo["rejects"]},
        {"label": "Wrong Mail", "count": mo["wrongMail"]},
        {"label": "Withdraw Letter", "count": mo["withdrawLetter"]},
    ])
    _chips(doc, [
        ("Total Processed", figures["total_processed"]),
        ("File Creation (Total)", figures["fc_total"]),
        (" • Individual Reg", figures["fc_ind_reg"]),
        (" • Individual Urg", figures["fc_ind_urg"]),
        (" • Family Reg", figures["fc_fam_reg"]),
        (" • Family Urg", figures["fc_fam_urg"]),
        ("Attachments (Total)", figures["at_total"]),
        (" • Regular", figures["at_reg"]),
        (" • Urgent", figures["at_urg"]),
        ("Rejects (Total)", figures["rj_total"]),
    ])

    # File creations
    _heading(doc, "File Creations (Details)")
    fc_rows = [
        {
            "value": r.get("value") or 0,
            "cat": f"{r['category']}/{r['urgency']}",
            "group": "-" if r.get("groupIndex") is None else f"#{r['groupIndex'] + 1}",
            "row": (r.get("rowIndex") or 0) + 1,
            "checks": checks_label(r),
        }
        for r in stat.get("fileCreationRows") or []
    ]
    if fc_rows:
        _table(doc, [
            ("value", "Application #", 120),
            ("cat", "Category / Urgency", 180),
            ("group", "Family Group", 110),
            ("row", "Row", 70),
            ("checks", "Checks", 150),
        ], fc_rows)
    else:
        _none(doc)

    # Attachments
    _heading(doc, "Attachments (Details)")
    at_rows = [
        {
            "value": r.get("value") or 0,
            "urg": r["urgency"],
            "row": (r.get("rowIndex") or 0) + 1,
            "checks": checks_label(r),
        }
        for r in stat.get("attachmentsRows") or []
    ]
    if at_rows:
        _table(doc, [
            ("value", "Application #", 120),
            ("urg", "Urgency", 120),
            ("row", "Row", 70),
            ("checks", "Checks", 250),
        ], at_rows)
    else:
        _none(doc)

    # Rejects
    _heading(doc, "Rejects (Details)")
    rj_rows = [
        {
            "value": r.get("value") or 0,
            "row": (r.get("rowIndex") or 0) + 1,
            "checks": checks_label(r),
            "reasons": [x for x in r.get("reasons") or [] if x],
        }
        for r in stat.get("rejectRows") or []
    ]
    if rj_rows:
        _rejects_table(doc, rj_rows)
    else:
        _none(doc)

    # Checklist totals
    _heading(doc, "Checklist Totals (All Sections)")
    _table(doc, [("type", "Type", 180), ("count", "Count", 120)], [
        {"type": flag.upper(), "count": figures[f"chk_{flag}"]} for flag in _FLAGS
    ])

    # Top reject reasons
    _heading(doc, "Top Reject Reasons")
    ranked = top_reasons(stat.get("rejectRows") or [])
    if ranked:
        _table(doc, [("reason", "Reason", doc.content_width - 90), ("count", "Count", 90)],
               [{"reason": reason, "count": count} for reason, count in ranked])
    else:
        _none(doc)

    doc.finalize(_footer_stamp(stat["id"]))
    return doc.to_bytes()
