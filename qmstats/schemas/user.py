"""Pydantic schemas for registration, profiles and user search."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from qmstats.schemas.stat import CamelModel


class UserCreate(CamelModel):
    email: str
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    surname: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v

    @field_validator("first_name", "surname")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class UserRead(CamelModel):
    id: int
    email: str
    first_name: str
    surname: str

    model_config = {"from_attributes": True}


class TeamLeaderRef(BaseModel):
    id: int
    name: str
    email: str


class ProfileResponse(UserRead):
    is_admin: bool = False
    team_leader: TeamLeaderRef | None = None


class UserSearchItem(BaseModel):
    id: int
    name: str
    email: str


class UserSearchResponse(BaseModel):
    users: list[UserSearchItem]


class TeamLeaderUpdate(CamelModel):
    leader_user_id: int | None = None
