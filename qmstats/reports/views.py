"""
Report views: which rows an export iterates and which columns it shows.

``summary`` and ``mail`` produce one line per stat; ``file``,
``attachments`` and ``rejects`` produce one line per child row and need
detail expansion.  Both renderers share the line items built here and
only differ in column schemas and cell formatting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from qmstats.core.config import settings
from qmstats.core.exceptions import BadRequestError

VIEWS = ("summary", "file", "attachments", "rejects", "mail")
DETAIL_VIEWS = frozenset({"file", "attachments", "rejects"})

TITLES = {
    "summary": "Hive — Summary",
    "file": "Hive — File Creation (rows)",
    "attachments": "Hive — Attachments (rows)",
    "rejects": "Hive — Rejects (rows)",
    "mail": "Hive — Mail Opening",
}

_NOTE_NOUNS = {
    "summary": "summary records",
    "file": "file-creation rows",
    "attachments": "attachment rows",
    "rejects": "reject rows",
    "mail": "mail-opening rows",
}


@dataclass(frozen=True)
class ReportColumn:
    key: str
    header: str
    width: float
    align: str = "left"


def normalise_view(raw: str | None) -> str:
    view = (raw or "summary").strip().lower()
    if view not in VIEWS:
        raise BadRequestError(f"Unsupported view '{raw}'. Use one of: {', '.join(VIEWS)}.")
    return view


def needs_details(view: str) -> bool:
    return view in DETAIL_VIEWS


def footer_note(view: str, count: int) -> str:
    return f"{count} {_NOTE_NOUNS[view]}"


def split_display_name(name: str | None) -> tuple[str, str]:
    """First whitespace token is the first name; the rest is the surname.

    Lossy for multi-word first names; kept for parity with earlier exports.
    """
    parts = str(name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _owner_names(stat: dict[str, Any]) -> tuple[str, str]:
    user = stat["user"]
    if settings.EXPORT_SPLIT_DISPLAY_NAME:
        return split_display_name(user.get("name"))
    return user.get("firstName") or "", user.get("surname") or ""


def _time_range(stat: dict[str, Any]) -> str:
    return f"{stat.get('start_time') or '-'}–{stat.get('end_time') or '-'}"


def _child_line(stat: dict[str, Any], row: dict[str, Any], first: str, surname: str) -> dict[str, Any]:
    return {
        "value": row.get("value") or 0,
        "first": first,
        "surname": surname,
        "email": stat["user"]["email"],
        "natp": 1 if row.get("natp") else 0,
        "rtd": 1 if row.get("rtd") else 0,
        "coi": 1 if row.get("coi") else 0,
        "category": row.get("category", ""),
        "urgency": row.get("urgency", ""),
        "reasons": list(row.get("reasons") or []),
        "date": stat["date"],
        "time": _time_range(stat),
    }


def build_lines(view: str, stats: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten shaped stats into one dict per output line for *view*."""
    lines: list[dict[str, Any]] = []

    if view == "summary":
        for s in stats:
            c = s["counts"]
            fc = c["fileCreation"]
            chk = c["checklist"]
            lines.append(
                {
                    "client": s["user"]["name"],
                    "email": s["user"]["email"],
                    "date": s["date"],
                    "time": _time_range(s),
                    "fc": (
                        f"{fc['individual']['regular']}/{fc['individual']['urgent']}/"
                        f"{fc['family']['regular']}/{fc['family']['urgent']}"
                    ),
                    "att": f"{c['attachments']['regular']}/{c['attachments']['urgent']}",
                    "rej": c["rejects"],
                    "check": f"{chk['NATP']}/{chk['RTD']}/{chk['COI']}/{chk['NONE']}",
                    "leader": s["teamLeader"]["email"] if s.get("teamLeader") else "",
                }
            )
    elif view == "mail":
        for s in stats:
            mo = s["mailOpening"]
            lines.append(
                {
                    "client": s["user"]["name"],
                    "email": s["user"]["email"],
                    "date": s["date"],
                    "time": _time_range(s),
                    "env": mo["totalEnvelopes"],
                    "file": mo["fileCreation"],
                    "ufile": mo["urgentFileCreation"],
                    "att": mo["attachment"],
                    "uatt": mo["urgentAttachment"],
                    "rej": mo["rejects"],
                    "wrong": mo["wrongMail"],
                    "withd": mo["withdrawLetter"],
                }
            )
    else:
        rows_key = {
            "file": "fileCreationRows",
            "attachments": "attachmentsRows",
            "rejects": "rejectRows",
        }[view]
        for s in stats:
            first, surname = _owner_names(s)
            for row in s.get(rows_key) or []:
                lines.append(_child_line(s, row, first, surname))

    return lines


# ── Spreadsheet column schemas (widths in character units) ──────────
_XLSX_ROW_PREFIX = [
    ReportColumn("value", "Value", 8),
    ReportColumn("first", "First", 16),
    ReportColumn("surname", "Surname", 18),
    ReportColumn("email", "Email", 30),
    ReportColumn("natp", "NATP", 8),
    ReportColumn("rtd", "RTD", 8),
    ReportColumn("coi", "COI", 8),
]
_XLSX_ROW_SUFFIX = [ReportColumn("date", "Date", 12), ReportColumn("time", "Time", 12)]

XLSX_COLUMNS: dict[str, list[ReportColumn]] = {
    "summary": [
        ReportColumn("client", "Client", 28),
        ReportColumn("email", "Client Email", 30),
        ReportColumn("date", "Date", 12),
        ReportColumn("time", "Time", 12),
        ReportColumn("fc", "FC (IndR/IndU/FamR/FamU)", 22),
        ReportColumn("att", "AT (R/U)", 12),
        ReportColumn("rej", "Rejects", 10),
        ReportColumn("check", "Checklist N/R/C/N", 22),
        ReportColumn("leader", "Team Leader", 28),
    ],
    "file": [
        *_XLSX_ROW_PREFIX,
        ReportColumn("category", "Category", 12),
        ReportColumn("urgency", "Urgency", 10),
        *_XLSX_ROW_SUFFIX,
    ],
    "attachments": [
        *_XLSX_ROW_PREFIX,
        ReportColumn("urgency", "Urgency", 10),
        *_XLSX_ROW_SUFFIX,
    ],
    "rejects": [
        *_XLSX_ROW_PREFIX,
        ReportColumn("reasons", "Reasons", 50),
        *_XLSX_ROW_SUFFIX,
    ],
    "mail": [
        ReportColumn("client", "Client", 28),
        ReportColumn("email", "Email", 30),
        ReportColumn("date", "Date", 12),
        ReportColumn("time", "Time", 12),
        ReportColumn("env", "Total Env", 12),
        ReportColumn("file", "File", 10),
        ReportColumn("ufile", "Urg File", 10),
        ReportColumn("att", "Attach", 10),
        ReportColumn("uatt", "Urg Att", 10),
        ReportColumn("rej", "Rejects", 10),
        ReportColumn("wrong", "Wrong", 10),
        ReportColumn("withd", "Withdraw", 12),
    ],
}


# ── PDF column schemas (declared widths in points, rescaled later) ──
_PDF_ROW_PREFIX = [
    ReportColumn("value", "Value", 70, "right"),
    ReportColumn("first", "First", 110),
    ReportColumn("surname", "Surname", 140),
    ReportColumn("email", "Email", 240),
    ReportColumn("natp", "NATP", 60, "right"),
    ReportColumn("rtd", "RTD", 60, "right"),
    ReportColumn("coi", "COI", 60, "right"),
]
_PDF_ROW_SUFFIX = [ReportColumn("date", "Date", 70), ReportColumn("time", "Time", 90)]

PDF_COLUMNS: dict[str, list[ReportColumn]] = {
    "summary": [
        ReportColumn("client", "Client", 170),
        ReportColumn("email", "Email", 230),
        ReportColumn("date", "Date", 70),
        ReportColumn("time", "Time", 90),
        ReportColumn("fc", "FC  (IndR / IndU / FamR / FamU)", 210, "right"),
        ReportColumn("att", "AT  (R / U)", 90, "right"),
        ReportColumn("rej", "RJ", 60, "right"),
        ReportColumn("check", "Checklist  N / R / C / N", 210, "right"),
        ReportColumn("leader", "Team Leader", 160),
    ],
    "file": [
        *_PDF_ROW_PREFIX,
        ReportColumn("category", "Category", 90),
        ReportColumn("urgency", "Urgency", 90),
        *_PDF_ROW_SUFFIX,
    ],
    "attachments": [
        *_PDF_ROW_PREFIX,
        ReportColumn("urgency", "Urgency", 110),
        *_PDF_ROW_SUFFIX,
    ],
    "rejects": [
        *_PDF_ROW_PREFIX,
        ReportColumn("reasons", "Reasons (first 2)", 260),
        *_PDF_ROW_SUFFIX,
    ],
    "mail": [
        ReportColumn("client", "Client", 170),
        ReportColumn("email", "Email", 230),
        ReportColumn("date", "Date", 70),
        ReportColumn("time", "Time", 90),
        ReportColumn("env", "Total Env", 80, "right"),
        ReportColumn("file", "File", 60, "right"),
        ReportColumn("ufile", "Urg File", 70, "right"),
        ReportColumn("att", "Attach", 60, "right"),
        ReportColumn("uatt", "Urg Att", 70, "right"),
        ReportColumn("rej", "Rejects", 70, "right"),
        ReportColumn("wrong", "Wrong", 60, "right"),
        ReportColumn("withd", "Withdraw", 80, "right"),
    ],
}
