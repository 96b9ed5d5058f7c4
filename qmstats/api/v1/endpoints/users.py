"""
Profile, user search and team-leader selection.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.api.v1.deps import get_current_user, get_db, is_admin_email
from qmstats.core.exceptions import BadRequestError, NotFoundError
from qmstats.models.user import User
from qmstats.schemas.token import MessageResponse
from qmstats.schemas.user import (ProfileResponse, TeamLeaderRef,
                                  TeamLeaderUpdate, UserSearchItem,
                                  UserSearchResponse)
from qmstats.services.aggregation import ilike_contains
from qmstats.services.stats import get_team_leader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

SEARCH_LIMIT = 10


async def search_users(db: AsyncSession, query: str, *, include_email: bool) -> list[UserSearchItem]:
    """Up to ``SEARCH_LIMIT`` users whose name (and optionally email) contains *query*."""
    columns = [User.first_name, User.surname]
    if include_email:
        columns.append(User.email)
    result = await db.execute(
        select(User)
        .where(or_(*(ilike_contains(c, query) for c in columns)))
        .order_by(User.first_name, User.id)
        .limit(SEARCH_LIMIT)
    )
    return [
        UserSearchItem(id=u.id, name=u.full_name, email=u.email)
        for u in result.scalars().all()
    ]


@router.get("/me", response_model=ProfileResponse)
async def read_profile(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    leader = await get_team_leader(db, current_user)
    return ProfileResponse(
        id=current_user.id,
        email=current_user.email,
        first_name=current_user.first_name,
        surname=current_user.surname,
        is_admin=is_admin_email(current_user.email),
        team_leader=TeamLeaderRef(id=leader.id, name=leader.full_name, email=leader.email)
        if leader is not None
        else None,
    )


@router.get("/search", response_model=UserSearchResponse)
async def user_search(
    query: str | None = Query(default=None),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserSearchResponse:
    if not query or not query.strip():
        return UserSearchResponse(users=[])
    return UserSearchResponse(users=await search_users(db, query.strip(), include_email=True))


@router.put("/team-leader", response_model=MessageResponse)
async def set_team_leader(
    body: TeamLeaderUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    if not body.leader_user_id:
        raise BadRequestError("leaderUserId is required")
    if body.leader_user_id == current_user.id:
        raise BadRequestError("You cannot select yourself.")

    leader = await db.get(User, body.leader_user_id)
    if leader is None:
        raise NotFoundError("Leader not found")

    current_user.team_leader_user_id = leader.id
    await db.commit()
    logger.info("User %s selected team leader %s", current_user.id, leader.id)
    return MessageResponse()
