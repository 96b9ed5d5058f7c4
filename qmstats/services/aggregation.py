"""
Aggregated ("hive") stat query and detail expansion.

One parameterised SELECT joins each stat to its owner, the owner's team
leader and its mail-opening counters, and computes the per-stat derived
counts with correlated scalar subqueries.  ``total`` is a COUNT over the
very same filtered statement, so the count and the page can never
disagree on filter semantics.

Detail expansion is strictly two-phase: one query per child table for the
whole page, then one query for every reject reason of those rows.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from sqlalchemy import Select, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from qmstats.core.config import settings
from qmstats.models.stat import (AttachmentRow, FileCreationRow, MailOpening,
                                 RejectReason, RejectRow, Stat)
from qmstats.models.user import User
from qmstats.services.stats import (attachment_dict, file_creation_dict,
                                    mail_opening_dict, person_dict,
                                    reject_dict)

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}

owner = aliased(User, name="owner")
leader = aliased(User, name="leader")


# ── Filters ─────────────────────────────────────────────────────────
def _parse_int(raw: object, default: int) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    # 0 counts as "not supplied"
    return value or default


def _parse_date(raw: object) -> str | None:
    if raw is None:
        return None
    try:
        return date.fromisoformat(str(raw).strip()).isoformat()
    except ValueError:
        return None


def _clean(raw: object) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


@dataclass(frozen=True)
class AggregationFilters:
    free_text_query: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    owner_email_like: str | None = None
    leader_email_like: str | None = None
    page: int = 1
    page_size: int = 50
    include_details: bool = False

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "AggregationFilters":
        """Best-effort parse of grid query parameters; never raises."""
        page = max(1, _parse_int(params.get("page"), 1))
        page_size = _parse_int(params.get("pageSize"), settings.DEFAULT_PAGE_SIZE)
        page_size = min(settings.MAX_PAGE_SIZE, max(1, page_size))
        return cls(
            free_text_query=_clean(params.get("q")),
            date_from=_parse_date(params.get("from")),
            date_to=_parse_date(params.get("to")),
            owner_email_like=_clean(params.get("clientEmail")),
            leader_email_like=_clean(params.get("leaderEmail")),
            page=page,
            page_size=page_size,
            include_details=str(params.get("includeDetails", "")).strip().lower() in _TRUTHY,
        )

    def for_export(self, include_details: bool) -> "AggregationFilters":
        """Single unpaginated window capped at ``EXPORT_MAX_ROWS``."""
        return replace(
            self,
            page=1,
            page_size=settings.EXPORT_MAX_ROWS,
            include_details=include_details or self.include_details,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def describe(self) -> list[str]:
        """Human-readable chips for each active filter."""
        chips = []
        if self.free_text_query:
            chips.append(f'q: "{self.free_text_query}"')
        if self.date_from:
            chips.append(f"from: {self.date_from}")
        if self.date_to:
            chips.append(f"to: {self.date_to}")
        if self.owner_email_like:
            chips.append(f"client: {self.owner_email_like}")
        if self.leader_email_like:
            chips.append(f"leader: {self.leader_email_like}")
        return chips


# ── Query construction ──────────────────────────────────────────────
def _like_pattern(text: str) -> str:
    escaped = text.lower().replace("\\", "\\\\").replace("%", r"\%").replace("_", r"\_")
    return f"%{escaped}%"


def ilike_contains(column, text: str):
    """Case-insensitive substring match with LIKE wildcards in *text* escaped."""
    return func.lower(column).like(_like_pattern(text), escape="\\")


def _valid_rows(model, *conditions):
    """Correlated count of *model* rows with ``value > 0`` for the outer stat."""
    return (
        select(func.count(model.id))
        .where(model.stat_id == Stat.id, model.value > 0, *conditions)
        .scalar_subquery()
    )


def _flag_total(flag: str):
    """Sum of one checklist flag across all three child tables."""
    parts = []
    for model in (FileCreationRow, AttachmentRow, RejectRow):
        column = getattr(model, flag)
        subq = (
            select(func.sum(case((column, 1), else_=0)))
            .where(model.stat_id == Stat.id)
            .scalar_subquery()
        )
        parts.append(func.coalesce(subq, 0))
    return parts[0] + parts[1] + parts[2]


def _conditions(filters: AggregationFilters) -> list:
    where = []
    if filters.date_from:
        where.append(Stat.date >= filters.date_from)
    if filters.date_to:
        where.append(Stat.date <= filters.date_to)
    if filters.owner_email_like:
        where.append(ilike_contains(owner.email, filters.owner_email_like))
    if filters.leader_email_like:
        where.append(ilike_contains(leader.email, filters.leader_email_like))
    if filters.free_text_query:
        q = filters.free_text_query
        where.append(
            or_(
                ilike_contains(owner.first_name, q),
                ilike_contains(owner.surname, q),
                ilike_contains(owner.email, q),
                ilike_contains(leader.first_name, q),
                ilike_contains(leader.surname, q),
                ilike_contains(leader.email, q),
            )
        )
    return where


def build_aggregate_query(filters: AggregationFilters) -> Select:
    """Filtered, unordered, unpaginated aggregate SELECT."""
    fc = FileCreationRow
    return (
        select(
            Stat.id.label("id"),
            Stat.user_id.label("user_id"),
            Stat.date.label("date"),
            Stat.start_time.label("start_time"),
            Stat.end_time.label("end_time"),
            Stat.created_at.label("created_at"),
            Stat.updated_at.label("updated_at"),
            owner.email.label("user_email"),
            owner.first_name.label("user_first_name"),
            owner.surname.label("user_surname"),
            leader.id.label("leader_id"),
            leader.email.label("leader_email"),
            leader.first_name.label("leader_first_name"),
            leader.surname.label("leader_surname"),
            MailOpening.total_envelopes.label("total_envelopes"),
            MailOpening.file_creation.label("file_creation"),
            MailOpening.urgent_file_creation.label("urgent_file_creation"),
            MailOpening.attachment.label("attachment"),
            MailOpening.urgent_attachment.label("urgent_attachment"),
            MailOpening.rejects.label("rejects"),
            MailOpening.wrong_mail.label("wrong_mail"),
            MailOpening.withdraw_letter.label("withdraw_letter"),
            _valid_rows(fc, fc.category == "individual", fc.urgency == "regular").label("fc_ind_reg"),
            _valid_rows(fc, fc.category == "individual", fc.urgency == "urgent").label("fc_ind_urg"),
            _valid_rows(fc, fc.category == "family", fc.urgency == "regular").label("fc_fam_reg"),
            _valid_rows(fc, fc.category == "family", fc.urgency == "urgent").label("fc_fam_urg"),
            _valid_rows(AttachmentRow, AttachmentRow.urgency == "regular").label("att_reg"),
            _valid_rows(AttachmentRow, AttachmentRow.urgency == "urgent").label("att_urg"),
            _valid_rows(RejectRow).label("rej_total"),
            _flag_total("natp").label("chk_natp"),
            _flag_total("rtd").label("chk_rtd"),
            _flag_total("coi").label("chk_coi"),
            _flag_total("none").label("chk_none"),
        )
        .select_from(Stat)
        .join(owner, owner.id == Stat.user_id)
        .outerjoin(leader, leader.id == owner.team_leader_user_id)
        .outerjoin(MailOpening, MailOpening.stat_id == Stat.id)
        .where(*_conditions(filters))
    )


def _shape(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "date": row["date"],
        "start_time": row["start_time"],
        "end_time": row["end_time"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "user": person_dict(
            row["user_id"], row["user_first_name"], row["user_surname"], row["user_email"]
        ),
        "teamLeader": person_dict(
            row["leader_id"], row["leader_first_name"], row["leader_surname"], row["leader_email"]
        )
        if row["leader_id"] is not None
        else None,
        "mailOpening": mail_opening_dict(row),
        "counts": {
            "fileCreation": {
                "individual": {"regular": row["fc_ind_reg"] or 0, "urgent": row["fc_ind_urg"] or 0},
                "family": {"regular": row["fc_fam_reg"] or 0, "urgent": row["fc_fam_urg"] or 0},
            },
            "attachments": {"regular": row["att_reg"] or 0, "urgent": row["att_urg"] or 0},
            "rejects": row["rej_total"] or 0,
            "checklist": {
                "NATP": int(row["chk_natp"] or 0),
                "RTD": int(row["chk_rtd"] or 0),
                "COI": int(row["chk_coi"] or 0),
                "NONE": int(row["chk_none"] or 0),
            },
        },
    }


# ── Execution ───────────────────────────────────────────────────────
async def expand_details(db: AsyncSession, stats: list[dict[str, Any]]) -> None:
    """Attach child rows to every stat on the page, in place."""
    if not stats:
        return
    ids = [s["id"] for s in stats]

    # Phase 1: child rows for the whole page
    fcs = (
        await db.execute(
            select(FileCreationRow)
            .where(FileCreationRow.stat_id.in_(ids))
            .order_by(
                FileCreationRow.stat_id,
                FileCreationRow.category,
                FileCreationRow.urgency,
                FileCreationRow.group_index,
                FileCreationRow.row_index,
            )
        )
    ).scalars().all()
    atts = (
        await db.execute(
            select(AttachmentRow)
            .where(AttachmentRow.stat_id.in_(ids))
            .order_by(AttachmentRow.stat_id, AttachmentRow.urgency, AttachmentRow.row_index)
        )
    ).scalars().all()
    rejects = (
        await db.execute(
            select(RejectRow)
            .where(RejectRow.stat_id.in_(ids))
            .order_by(RejectRow.stat_id, RejectRow.row_index, RejectRow.id)
        )
    ).scalars().all()

    # Phase 2: reasons for every reject row found above
    reasons: dict[int, list[str]] = defaultdict(list)
    if rejects:
        result = await db.execute(
            select(RejectReason.reject_id, RejectReason.reason)
            .where(RejectReason.reject_id.in_([r.id for r in rejects]))
            .order_by(RejectReason.reject_id, RejectReason.id)
        )
        for reject_id, reason in result.all():
            reasons[reject_id].append(reason)

    fcs_by: dict[int, list[dict]] = defaultdict(list)
    for r in fcs:
        fcs_by[r.stat_id].append(file_creation_dict(r))
    atts_by: dict[int, list[dict]] = defaultdict(list)
    for r in atts:
        atts_by[r.stat_id].append(attachment_dict(r))
    rejects_by: dict[int, list[dict]] = defaultdict(list)
    for r in rejects:
        rejects_by[r.stat_id].append(reject_dict(r, reasons.get(r.id, [])))

    for s in stats:
        s["fileCreationRows"] = fcs_by.get(s["id"], [])
        s["attachmentsRows"] = atts_by.get(s["id"], [])
        s["rejectRows"] = rejects_by.get(s["id"], [])


async def run_aggregation(db: AsyncSession, filters: AggregationFilters) -> dict[str, Any]:
    """Execute the aggregate query and return ``{page, pageSize, total, stats}``."""
    stmt = build_aggregate_query(filters)

    total = (
        await db.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()

    page_stmt = (
        stmt.order_by(Stat.date.desc(), Stat.start_time.desc(), Stat.id.desc())
        .limit(filters.page_size)
        .offset(filters.offset)
    )
    rows = (await db.execute(page_stmt)).mappings().all()
    stats = [_shape(row) for row in rows]

    if filters.include_details:
        await expand_details(db, stats)

    logger.debug(
        "Aggregation page=%d size=%d total=%d details=%s",
        filters.page, filters.page_size, total, filters.include_details,
    )
    return {
        "page": filters.page,
        "pageSize": filters.page_size,
        "total": total,
        "stats": stats,
    }
