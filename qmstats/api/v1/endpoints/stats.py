"""
Stat endpoints — CRUD for the caller's own stats, read-only access for
group managers, the single-stat PDF and the send-to-team-leader mail.

Every successful write is announced on the live-update registry so open
admin grids refresh.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.api.v1.deps import (get_current_user, get_db, get_live_updates,
                                 get_mailer)
from qmstats.core.exceptions import NotFoundError, PermissionDeniedError
from qmstats.models.user import User
from qmstats.reports.stat_pdf import render_stat_pdf
from qmstats.schemas.stat import (REJECT_REASON_GROUPS, StatCreate,
                                  StatDetailResponse, StatListResponse,
                                  StatSavedResponse, StatUpdate)
from qmstats.schemas.token import MessageResponse
from qmstats.services.live_updates import LiveUpdateRegistry
from qmstats.services.mailer import Attachment, Mailer
from qmstats.services.stats import (assert_can_view, create_stat, delete_stat,
                                    fetch_full_stat, get_stat_or_404,
                                    get_team_leader, list_user_stats,
                                    read_only_state, update_stat)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])


def _announce(registry: LiveUpdateRegistry, action: str, stat_id: int, user_id: int) -> None:
    registry.broadcast(
        {"type": "stats.changed", "action": action, "statId": stat_id, "userId": user_id}
    )


@router.get("", response_model=StatListResponse)
async def list_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """The caller's stats, newest date and latest start first."""
    return {"stats": await list_user_stats(db, current_user.id)}


@router.post("", response_model=StatSavedResponse, status_code=201)
async def create(
    body: StatCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: LiveUpdateRegistry = Depends(get_live_updates),
) -> StatSavedResponse:
    stat = await create_stat(db, current_user.id, body)
    _announce(registry, "created", stat.id, current_user.id)
    return StatSavedResponse(id=stat.id)


@router.get("/reject-reasons")
async def reject_reason_catalog(_user: User = Depends(get_current_user)) -> dict:
    """Grouped reasons offered by the reject form."""
    return {
        "groups": [
            {"title": title, "reasons": reasons} for title, reasons in REJECT_REASON_GROUPS
        ]
    }


@router.get("/{stat_id}", response_model=StatDetailResponse)
async def get_stat(
    stat_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    stat = await get_stat_or_404(db, stat_id)
    view_reason = await assert_can_view(db, current_user.id, stat)
    full = await fetch_full_stat(db, stat)
    read_only, reason = read_only_state(stat, view_reason)
    full["readOnly"] = read_only
    full["readOnlyReason"] = reason
    return {"stat": full}


@router.put("/{stat_id}", response_model=StatSavedResponse)
async def update(
    stat_id: int,
    body: StatUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: LiveUpdateRegistry = Depends(get_live_updates),
) -> StatSavedResponse:
    await update_stat(db, current_user.id, stat_id, body)
    _announce(registry, "updated", stat_id, current_user.id)
    return StatSavedResponse(id=stat_id)


@router.delete("/{stat_id}", response_model=MessageResponse)
async def delete(
    stat_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: LiveUpdateRegistry = Depends(get_live_updates),
) -> MessageResponse:
    await delete_stat(db, current_user.id, stat_id)
    _announce(registry, "deleted", stat_id, current_user.id)
    return MessageResponse()


@router.get("/{stat_id}/pdf")
async def stat_pdf(
    stat_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Inline PDF summary; owner or a manager of the owner."""
    stat = await get_stat_or_404(db, stat_id)
    await assert_can_view(db, current_user.id, stat)
    pdf = render_stat_pdf(await fetch_full_stat(db, stat))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="qmstats-{stat_id}.pdf"'},
    )


@router.post("/{stat_id}/send", response_model=MessageResponse)
async def send_to_team_leader(
    stat_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    """Email the stat PDF to the owner's team leader."""
    stat = await get_stat_or_404(db, stat_id)
    if stat.user_id != current_user.id:
        raise PermissionDeniedError("Only the owner can send.")

    leader = await get_team_leader(db, current_user)
    if leader is None:
        raise NotFoundError("No Team Leader configured for this user.")

    pdf = render_stat_pdf(await fetch_full_stat(db, stat))
    body = (
        f"Hello {leader.full_name},\n\n"
        f"{current_user.full_name} <{current_user.email}> has sent a new stat (ID: {stat_id}).\n\n"
        f"Date: {stat.date}\n"
        f"Start: {stat.start_time}\n"
        f"End: {stat.end_time}\n\n"
        "A PDF summary is attached.\n\n"
        "— QMStats"
    )
    await mailer.send(
        to=leader.email,
        subject=f"QMStats — New stat from {current_user.full_name}",
        body=body,
        attachments=[Attachment(filename=f"qmstats-{stat_id}.pdf", content=pdf)],
    )
    logger.info("Stat %s sent to team leader %s", stat_id, leader.id)
    return MessageResponse()
