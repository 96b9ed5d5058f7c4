"""
Groups — a manager invites users, invitees accept or decline, and
accepted members' stats become readable (read-only) by the manager.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.api.v1.deps import get_current_user, get_db
from qmstats.api.v1.endpoints.users import search_users
from qmstats.core.exceptions import (ConflictError, NotFoundError,
                                     PermissionDeniedError)
from qmstats.models.group import (INVITE_ACCEPTED, INVITE_PENDING, Group,
                                  GroupInvite, GroupMember)
from qmstats.models.user import User
from qmstats.schemas.group import (GroupCreated, GroupListResponse, GroupRead,
                                   InviteCreate, InviteListResponse,
                                   InviteRead, InviteRespond, MemberRemove)
from qmstats.schemas.token import MessageResponse
from qmstats.schemas.user import UserSearchItem, UserSearchResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


async def _managed_group(db: AsyncSession, group_id: int, manager_id: int) -> Group:
    group = await db.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group not found.")
    if group.manager_id != manager_id:
        raise PermissionDeniedError("Not authorized.")
    return group


@router.post("/create", response_model=GroupCreated)
async def create_group(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> GroupCreated:
    """Create a group managed by the caller and named after them."""
    group = Group(group_name=current_user.full_name, manager_id=current_user.id)
    db.add(group)
    await db.commit()
    await db.refresh(group)
    logger.info("Group %s created by user %s", group.id, current_user.id)
    return GroupCreated(group_id=group.id, group_name=group.group_name)


@router.post("/invite", response_model=MessageResponse)
async def invite_user(
    body: InviteCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    group = await _managed_group(db, body.group_id, current_user.id)

    invitee = (
        await db.execute(select(User).where(User.email == body.user_email))
    ).scalar_one_or_none()
    if invitee is None:
        raise NotFoundError("User not found.")

    member = await db.execute(
        select(GroupMember.id).where(
            GroupMember.group_id == group.id, GroupMember.user_id == invitee.id
        )
    )
    if member.first() is not None:
        raise ConflictError("User is already a member.")

    pending = await db.execute(
        select(GroupInvite.id).where(
            GroupInvite.group_id == group.id,
            GroupInvite.user_id == invitee.id,
            GroupInvite.status == INVITE_PENDING,
        )
    )
    if pending.first() is not None:
        raise ConflictError("An invite is already pending.")

    db.add(GroupInvite(group_id=group.id, user_id=invitee.id))
    await db.commit()
    logger.info("User %s invited to group %s", invitee.id, group.id)
    return MessageResponse()


@router.get("/invites", response_model=InviteListResponse)
async def my_invites(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InviteListResponse:
    result = await db.execute(
        select(GroupInvite, Group)
        .join(Group, Group.id == GroupInvite.group_id)
        .where(GroupInvite.user_id == current_user.id, GroupInvite.status == INVITE_PENDING)
        .order_by(GroupInvite.created_at.desc(), GroupInvite.id.desc())
    )
    return InviteListResponse(
        invites=[
            InviteRead(
                invite_id=invite.id,
                group_id=group.id,
                group_name=group.group_name,
                status=invite.status,
                created_at=invite.created_at,
            )
            for invite, group in result.all()
        ]
    )


@router.post("/invite/respond", response_model=MessageResponse)
async def respond_to_invite(
    body: InviteRespond,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    invite = await db.get(GroupInvite, body.invite_id)
    if invite is None or invite.user_id != current_user.id:
        raise NotFoundError("Invite not found.")
    if invite.status != INVITE_PENDING:
        raise ConflictError("Invite has already been answered.")

    invite.status = body.status
    if body.status == INVITE_ACCEPTED:
        existing = await db.execute(
            select(GroupMember.id).where(
                GroupMember.group_id == invite.group_id,
                GroupMember.user_id == current_user.id,
            )
        )
        if existing.first() is None:
            db.add(GroupMember(group_id=invite.group_id, user_id=current_user.id))
    await db.commit()
    logger.info("User %s %s invite %s", current_user.id, body.status, invite.id)
    return MessageResponse()


@router.post("/remove", response_model=MessageResponse)
async def remove_member(
    body: MemberRemove,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    group = await _managed_group(db, body.group_id, current_user.id)
    await db.execute(
        delete(GroupMember).where(
            GroupMember.group_id == group.id, GroupMember.user_id == body.member_id
        )
    )
    await db.commit()
    logger.info("User %s removed from group %s", body.member_id, group.id)
    return MessageResponse()


@router.get("", response_model=GroupListResponse)
async def my_groups(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> GroupListResponse:
    """Groups managed by the caller, each with its current members."""
    groups = (
        await db.execute(
            select(Group).where(Group.manager_id == current_user.id).order_by(Group.id)
        )
    ).scalars().all()

    members: dict[int, list[UserSearchItem]] = defaultdict(list)
    if groups:
        rows = await db.execute(
            select(GroupMember.group_id, User)
            .join(User, User.id == GroupMember.user_id)
            .where(GroupMember.group_id.in_([g.id for g in groups]))
            .order_by(User.first_name, User.id)
        )
        for group_id, user in rows.all():
            members[group_id].append(UserSearchItem(id=user.id, name=user.full_name, email=user.email))

    return GroupListResponse(
        groups=[
            GroupRead(
                id=g.id,
                group_name=g.group_name,
                manager_id=g.manager_id,
                created_at=g.created_at,
                members=members.get(g.id, []),
            )
            for g in groups
        ]
    )


@router.get("/search-users", response_model=UserSearchResponse)
async def group_search_users(
    query: str | None = Query(default=None),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserSearchResponse:
    if not query or not query.strip():
        return UserSearchResponse(users=[])
    return UserSearchResponse(users=await search_users(db, query.strip(), include_email=False))
