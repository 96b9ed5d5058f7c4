"""
Group, membership and invitation models.

A manager owns a group; an invite moves pending → accepted/declined and
acceptance creates the membership row.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from qmstats.db.base import Base

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_DECLINED = "declined"


class Group(Base):
    __tablename__ = "user_groups"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    group_name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    manager_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    group_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("user_groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )


class GroupInvite(Base):
    __tablename__ = "group_invites"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    group_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("user_groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=INVITE_PENDING,
        server_default=INVITE_PENDING,
    )  # pending | accepted | declined
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
