"""Pydantic schemas for groups and invitations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from qmstats.schemas.stat import CamelModel
from qmstats.schemas.user import UserSearchItem


class GroupCreated(CamelModel):
    success: bool = True
    group_id: int
    group_name: str


class InviteCreate(CamelModel):
    group_id: int
    user_email: str

    @field_validator("user_email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class InviteRespond(CamelModel):
    invite_id: int
    status: str

    @field_validator("status")
    @classmethod
    def _validate_status(cls, v: str) -> str:
        if v not in ("accepted", "declined"):
            raise ValueError("status must be 'accepted' or 'declined'")
        return v


class MemberRemove(CamelModel):
    group_id: int
    member_id: int


class GroupRead(CamelModel):
    id: int
    group_name: str
    manager_id: int
    created_at: datetime | None = None
    members: list[UserSearchItem] = []


class GroupListResponse(BaseModel):
    groups: list[GroupRead]


class InviteRead(CamelModel):
    invite_id: int
    group_id: int
    group_name: str
    status: str
    created_at: datetime | None = None


class InviteListResponse(BaseModel):
    invites: list[InviteRead]
