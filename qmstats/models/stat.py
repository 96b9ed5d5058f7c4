"""
Stat (shift record) and its child tables.

Every child row hangs off ``stat_id``; reject reasons hang off their
reject row.  ``processed_mail`` is derived and rewritten on each save.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (BigInteger, Boolean, Column, DateTime, ForeignKey,
                        Index, Integer, String, Text)

from qmstats.db.base import Base

CATEGORIES = ("individual", "family")
URGENCIES = ("regular", "urgent")
CHECK_FLAGS = ("natp", "rtd", "coi", "none")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _flag() -> Column:
    return Column(Boolean, nullable=False, default=False, server_default="false")


class Stat(Base):
    __tablename__ = "stats"
    __table_args__ = (Index("ix_stats_user_date", "user_id", "date"),)

    # Caller-supplied identity
    id: int = Column(BigInteger, primary_key=True, autoincrement=False)  # type: ignore[assignment]
    user_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date: str = Column(String(10), nullable=False, index=True)  # type: ignore[assignment]  # YYYY-MM-DD
    start_time: str = Column(String(5), nullable=False)  # type: ignore[assignment]  # HH:MM
    end_time: str = Column(String(5), nullable=False)  # type: ignore[assignment]  # HH:MM
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class MailOpening(Base):
    __tablename__ = "mail_openings"

    stat_id: int = Column(  # type: ignore[assignment]
        BigInteger, ForeignKey("stats.id", ondelete="CASCADE"), primary_key=True
    )
    total_envelopes: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    file_creation: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    urgent_file_creation: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    attachment: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    urgent_attachment: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    rejects: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    wrong_mail: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    withdraw_letter: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]


class FileCreationRow(Base):
    __tablename__ = "file_creations"

    id: int = Column(Integer, primary_key=True)  # type: ignore[assignment]
    stat_id: int = Column(  # type: ignore[assignment]
        BigInteger, ForeignKey("stats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # individual | family
    urgency: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # regular | urgent
    group_index: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    row_index: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    value: int = Column(BigInteger, nullable=False, default=0)  # type: ignore[assignment]
    natp: bool = _flag()  # type: ignore[assignment]
    rtd: bool = _flag()  # type: ignore[assignment]
    coi: bool = _flag()  # type: ignore[assignment]
    none: bool = _flag()  # type: ignore[assignment]


class AttachmentRow(Base):
    __tablename__ = "attachments"

    id: int = Column(Integer, primary_key=True)  # type: ignore[assignment]
    stat_id: int = Column(  # type: ignore[assignment]
        BigInteger, ForeignKey("stats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    urgency: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    row_index: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    value: int = Column(BigInteger, nullable=False, default=0)  # type: ignore[assignment]
    natp: bool = _flag()  # type: ignore[assignment]
    rtd: bool = _flag()  # type: ignore[assignment]
    coi: bool = _flag()  # type: ignore[assignment]
    none: bool = _flag()  # type: ignore[assignment]


class RejectRow(Base):
    __tablename__ = "rejects"

    id: int = Column(Integer, primary_key=True)  # type: ignore[assignment]
    stat_id: int = Column(  # type: ignore[assignment]
        BigInteger, ForeignKey("stats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    row_index: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    value: int = Column(BigInteger, nullable=False, default=0)  # type: ignore[assignment]
    natp: bool = _flag()  # type: ignore[assignment]
    rtd: bool = _flag()  # type: ignore[assignment]
    coi: bool = _flag()  # type: ignore[assignment]
    none: bool = _flag()  # type: ignore[assignment]


class RejectReason(Base):
    __tablename__ = "reject_reasons"

    # Insertion order is the display order
    id: int = Column(Integer, primary_key=True)  # type: ignore[assignment]
    reject_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("rejects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: str = Column(Text, nullable=False)  # type: ignore[assignment]


class ProcessedMail(Base):
    __tablename__ = "processed_mail"

    stat_id: int = Column(  # type: ignore[assignment]
        BigInteger, ForeignKey("stats.id", ondelete="CASCADE"), primary_key=True
    )
    file_creation_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    attachments_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    rejects_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    total_processed: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    natp_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    rtd_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    coi_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    none_total: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    tl_count: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
