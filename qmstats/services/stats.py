"""
Stat write path, permission helpers and single-stat reads.

Create, update and delete each run as one transaction: the stat, its
mail-opening counters, every child row and the derived ``processed_mail``
totals are committed together or not at all.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, delete, exists, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.core.config import settings
from qmstats.core.exceptions import (ConflictError, NotFoundError,
                                     PermissionDeniedError)
from qmstats.models.group import Group, GroupMember
from qmstats.models.stat import (AttachmentRow, FileCreationRow, MailOpening,
                                 ProcessedMail, RejectReason, RejectRow, Stat)
from qmstats.models.user import User
from qmstats.schemas.stat import StatCreate, StatUpdate

logger = logging.getLogger(__name__)

READ_ONLY_PERMISSION = "permission"
READ_ONLY_EXPIRED = "expired"

_MAIL_OPENING_FIELDS = (
    ("total_envelopes", "totalEnvelopes"),
    ("file_creation", "fileCreation"),
    ("urgent_file_creation", "urgentFileCreation"),
    ("attachment", "attachment"),
    ("urgent_attachment", "urgentAttachment"),
    ("rejects", "rejects"),
    ("wrong_mail", "wrongMail"),
    ("withdraw_letter", "withdrawLetter"),
)


# ── Helpers ─────────────────────────────────────────────────────────
def _ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def can_edit(created_at: datetime | None, now: datetime | None = None) -> bool:
    """True while ``now - created_at`` is strictly under the edit window."""
    if created_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    window = timedelta(hours=settings.EDIT_WINDOW_HOURS)
    return _ensure_utc(now) - _ensure_utc(created_at) < window


def person_dict(user_id: int, first_name: str, surname: str, email: str) -> dict[str, Any]:
    return {
        "id": user_id,
        "name": f"{first_name} {surname}".strip(),
        "firstName": first_name,
        "surname": surname,
        "email": email,
    }


def mail_opening_dict(values: Any) -> dict[str, int]:
    """Shape mail-opening counters; *values* is a row mapping or ``None``."""
    out: dict[str, int] = {}
    for column, key in _MAIL_OPENING_FIELDS:
        out[key] = int((values.get(column) if values is not None else None) or 0)
    return out


def file_creation_dict(row: FileCreationRow) -> dict[str, Any]:
    return {
        "category": row.category,
        "urgency": row.urgency,
        "groupIndex": row.group_index,
        "rowIndex": row.row_index,
        "value": row.value,
        "natp": bool(row.natp),
        "rtd": bool(row.rtd),
        "coi": bool(row.coi),
        "none": bool(row.none),
    }


def attachment_dict(row: AttachmentRow) -> dict[str, Any]:
    return {
        "urgency": row.urgency,
        "rowIndex": row.row_index,
        "value": row.value,
        "natp": bool(row.natp),
        "rtd": bool(row.rtd),
        "coi": bool(row.coi),
        "none": bool(row.none),
    }


def reject_dict(row: RejectRow, reasons: list[str]) -> dict[str, Any]:
    return {
        "rowIndex": row.row_index,
        "value": row.value,
        "natp": bool(row.natp),
        "rtd": bool(row.rtd),
        "coi": bool(row.coi),
        "none": bool(row.none),
        "reasons": reasons,
    }


def compute_processed_totals(payload: StatUpdate) -> dict[str, int]:
    """Derive the ``processed_mail`` row from a stat payload."""
    fc_total = sum(1 for r in payload.file_creation_rows if r.value > 0)
    att_total = sum(1 for r in payload.attachments_rows if r.value > 0)
    rej_total = sum(1 for r in payload.reject_rows if r.value > 0)

    checks = [
        r.checks
        for r in (*payload.file_creation_rows, *payload.attachments_rows, *payload.reject_rows)
    ]
    return {
        "file_creation_total": fc_total,
        "attachments_total": att_total,
        "rejects_total": rej_total,
        "total_processed": fc_total + att_total + rej_total,
        "natp_total": sum(1 for c in checks if c.natp),
        "rtd_total": sum(1 for c in checks if c.rtd),
        "coi_total": sum(1 for c in checks if c.coi),
        "none_total": sum(1 for c in checks if c.none),
        "tl_count": payload.processed.tl_count,
    }


# ── Permission checks ───────────────────────────────────────────────
async def is_manager_of(db: AsyncSession, manager_id: int, user_id: int) -> bool:
    """True if *user_id* belongs to any group managed by *manager_id*."""
    stmt = select(
        exists().where(
            and_(
                GroupMember.group_id == Group.id,
                Group.manager_id == manager_id,
                GroupMember.user_id == user_id,
            )
        )
    )
    return bool((await db.execute(stmt)).scalar())


async def get_stat_or_404(db: AsyncSession, stat_id: int) -> Stat:
    stat = await db.get(Stat, stat_id)
    if stat is None:
        raise NotFoundError("Stat not found.")
    return stat


async def assert_can_view(db: AsyncSession, requester_id: int, stat: Stat) -> str | None:
    """Return ``None`` for the owner, ``"permission"`` for a manager, else raise."""
    if stat.user_id == requester_id:
        return None
    if await is_manager_of(db, requester_id, stat.user_id):
        return READ_ONLY_PERMISSION
    raise PermissionDeniedError("You do not have access to this stat.")


def _assert_can_modify(stat: Stat, owner_id: int, action: str, now: datetime | None) -> None:
    if stat.user_id != owner_id:
        raise PermissionDeniedError(f"You can only {action} your own stats.")
    if not can_edit(stat.created_at, now):
        verb = "Editing" if action == "edit" else "Deletion"
        raise PermissionDeniedError(
            f"{verb} window has passed ({settings.EDIT_WINDOW_HOURS} hours)."
        )


async def has_overlap(
    db: AsyncSession,
    user_id: int,
    date: str,
    start_time: str,
    end_time: str,
    exclude_id: int | None = None,
) -> bool:
    """Half-open interval test against the owner's other stats on *date*."""
    stmt = select(Stat.id).where(
        Stat.user_id == user_id,
        Stat.date == date,
        Stat.start_time < end_time,
        Stat.end_time > start_time,
    )
    if exclude_id is not None:
        stmt = stmt.where(Stat.id != exclude_id)
    result = await db.execute(stmt.limit(1))
    return result.first() is not None


# ── Writes ──────────────────────────────────────────────────────────
async def _insert_children(db: AsyncSession, stat_id: int, payload: StatUpdate) -> None:
    db.add_all(
        FileCreationRow(
            stat_id=stat_id,
            category=r.category,
            urgency=r.urgency,
            group_index=r.group_index,
            row_index=r.row_index,
            value=r.value,
            natp=r.checks.natp,
            rtd=r.checks.rtd,
            coi=r.checks.coi,
            none=r.checks.none,
        )
        for r in payload.file_creation_rows
    )
    db.add_all(
        AttachmentRow(
            stat_id=stat_id,
            urgency=r.urgency,
            row_index=r.row_index,
            value=r.value,
            natp=r.checks.natp,
            rtd=r.checks.rtd,
            coi=r.checks.coi,
            none=r.checks.none,
        )
        for r in payload.attachments_rows
    )
    for r in payload.reject_rows:
        reject = RejectRow(
            stat_id=stat_id,
            row_index=r.row_index,
            value=r.value,
            natp=r.checks.natp,
            rtd=r.checks.rtd,
            coi=r.checks.coi,
            none=r.checks.none,
        )
        db.add(reject)
        # Reasons need the generated reject id
        await db.flush()
        db.add_all(RejectReason(reject_id=reject.id, reason=reason) for reason in r.reasons)
    await db.flush()


async def _delete_children(db: AsyncSession, stat_id: int) -> None:
    """Remove detail rows; reasons go before their reject rows."""
    reject_ids = select(RejectRow.id).where(RejectRow.stat_id == stat_id)
    await db.execute(delete(RejectReason).where(RejectReason.reject_id.in_(reject_ids)))
    await db.execute(delete(RejectRow).where(RejectRow.stat_id == stat_id))
    await db.execute(delete(AttachmentRow).where(AttachmentRow.stat_id == stat_id))
    await db.execute(delete(FileCreationRow).where(FileCreationRow.stat_id == stat_id))


async def _upsert_processed(db: AsyncSession, stat_id: int, totals: dict[str, int]) -> None:
    values = {"stat_id": stat_id, "updated_at": datetime.now(timezone.utc), **totals}
    update_cols = {k: v for k, v in values.items() if k != "stat_id"}
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = postgresql.insert(ProcessedMail).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=["stat_id"], set_=update_cols)
    elif dialect == "sqlite":
        stmt = sqlite.insert(ProcessedMail).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=["stat_id"], set_=update_cols)
    elif dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(ProcessedMail).values(**values)
        stmt = stmt.on_duplicate_key_update(**update_cols)
    else:
        await db.merge(ProcessedMail(**values))
        return
    await db.execute(stmt)


async def _upsert_mail_opening(db: AsyncSession, stat_id: int, payload: StatUpdate) -> None:
    counters = payload.mail_opening.model_dump()
    mail_opening = await db.get(MailOpening, stat_id)
    if mail_opening is None:
        db.add(MailOpening(stat_id=stat_id, **counters))
    else:
        for column, value in counters.items():
            setattr(mail_opening, column, value)


async def create_stat(db: AsyncSession, owner_id: int, payload: StatCreate) -> Stat:
    if await db.get(Stat, payload.id) is not None:
        raise ConflictError("A stat with this id already exists.")
    if await has_overlap(db, owner_id, payload.date, payload.start_time, payload.end_time):
        raise ConflictError("Time overlaps existing stat.")

    try:
        stat = Stat(
            id=payload.id,
            user_id=owner_id,
            date=payload.date,
            start_time=payload.start_time,
            end_time=payload.end_time,
        )
        db.add(stat)
        await db.flush()
        await _upsert_mail_opening(db, stat.id, payload)
        await _insert_children(db, stat.id, payload)
        await _upsert_processed(db, stat.id, compute_processed_totals(payload))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Stat %s created by user %s (%s %s–%s)",
                stat.id, owner_id, stat.date, stat.start_time, stat.end_time)
    return stat


async def update_stat(
    db: AsyncSession,
    owner_id: int,
    stat_id: int,
    payload: StatUpdate,
    now: datetime | None = None,
) -> Stat:
    stat = await get_stat_or_404(db, stat_id)
    _assert_can_modify(stat, owner_id, "edit", now)
    if await has_overlap(
        db, owner_id, payload.date, payload.start_time, payload.end_time, exclude_id=stat_id
    ):
        raise ConflictError("Time overlaps existing stat.")

    try:
        stat.date = payload.date
        stat.start_time = payload.start_time
        stat.end_time = payload.end_time
        stat.updated_at = datetime.now(timezone.utc)
        await _upsert_mail_opening(db, stat_id, payload)
        await _delete_children(db, stat_id)
        await _insert_children(db, stat_id, payload)
        await _upsert_processed(db, stat_id, compute_processed_totals(payload))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Stat %s updated by user %s", stat_id, owner_id)
    return stat


async def delete_stat(
    db: AsyncSession,
    owner_id: int,
    stat_id: int,
    now: datetime | None = None,
) -> None:
    stat = await get_stat_or_404(db, stat_id)
    _assert_can_modify(stat, owner_id, "delete", now)

    try:
        await _delete_children(db, stat_id)
        await db.execute(delete(MailOpening).where(MailOpening.stat_id == stat_id))
        await db.execute(delete(ProcessedMail).where(ProcessedMail.stat_id == stat_id))
        await db.execute(delete(Stat).where(Stat.id == stat_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Stat %s deleted by user %s", stat_id, owner_id)


# ── Reads ───────────────────────────────────────────────────────────
async def list_user_stats(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Stat, MailOpening)
        .outerjoin(MailOpening, MailOpening.stat_id == Stat.id)
        .where(Stat.user_id == user_id)
        .order_by(Stat.date.desc(), Stat.start_time.desc())
    )
    return [
        {
            "id": stat.id,
            "date": stat.date,
            "start_time": stat.start_time,
            "end_time": stat.end_time,
            "mailOpening": mail_opening_dict(_columns(mo)),
            "created_at": stat.created_at,
            "updated_at": stat.updated_at,
        }
        for stat, mo in result.all()
    ]


def _columns(obj: Any) -> dict[str, Any] | None:
    if obj is None:
        return None
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


async def fetch_full_stat(db: AsyncSession, stat: Stat) -> dict[str, Any]:
    """Load a stat with owner, counters, every child row and processed totals."""
    owner = await db.get(User, stat.user_id)
    mail_opening = await db.get(MailOpening, stat.id)
    processed = await db.get(ProcessedMail, stat.id)

    fcs = (
        await db.execute(
            select(FileCreationRow)
            .where(FileCreationRow.stat_id == stat.id)
            .order_by(
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
            .where(AttachmentRow.stat_id == stat.id)
            .order_by(AttachmentRow.urgency, AttachmentRow.row_index)
        )
    ).scalars().all()
    rejects = (
        await db.execute(
            select(RejectRow)
            .where(RejectRow.stat_id == stat.id)
            .order_by(RejectRow.row_index, RejectRow.id)
        )
    ).scalars().all()

    reasons_by_reject: dict[int, list[str]] = {r.id: [] for r in rejects}
    if rejects:
        reason_rows = await db.execute(
            select(RejectReason.reject_id, RejectReason.reason)
            .where(RejectReason.reject_id.in_(list(reasons_by_reject)))
            .order_by(RejectReason.reject_id, RejectReason.id)
        )
        for reject_id, reason in reason_rows.all():
            reasons_by_reject[reject_id].append(reason)

    processed_out = _columns(processed) or {}
    return {
        "id": stat.id,
        "date": stat.date,
        "start_time": stat.start_time,
        "end_time": stat.end_time,
        "created_at": stat.created_at,
        "updated_at": stat.updated_at,
        "user": person_dict(owner.id, owner.first_name, owner.surname, owner.email)
        if owner is not None
        else None,
        "mailOpening": mail_opening_dict(_columns(mail_opening)),
        "fileCreationRows": [file_creation_dict(r) for r in fcs],
        "attachmentsRows": [attachment_dict(r) for r in atts],
        "rejectRows": [reject_dict(r, reasons_by_reject[r.id]) for r in rejects],
        "processed": {
            "fileCreationTotal": processed_out.get("file_creation_total", 0),
            "attachmentsTotal": processed_out.get("attachments_total", 0),
            "rejectsTotal": processed_out.get("rejects_total", 0),
            "totalProcessed": processed_out.get("total_processed", 0),
            "natpTotal": processed_out.get("natp_total", 0),
            "rtdTotal": processed_out.get("rtd_total", 0),
            "coiTotal": processed_out.get("coi_total", 0),
            "noneTotal": processed_out.get("none_total", 0),
            "tlCount": processed_out.get("tl_count", 0),
        },
    }


def read_only_state(stat: Stat, view_reason: str | None, now: datetime | None = None) -> tuple[bool, str | None]:
    """Combine the viewer's permission with the edit window for ``readOnly``."""
    if view_reason is not None:
        return True, view_reason
    if not can_edit(stat.created_at, now):
        return True, READ_ONLY_EXPIRED
    return False, None


async def get_team_leader(db: AsyncSession, user: User) -> User | None:
    if user.team_leader_user_id is None:
        return None
    return await db.get(User, user.team_leader_user_id)
