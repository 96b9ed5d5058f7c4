"""Response schemas for the aggregated ("hive") grid."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from qmstats.schemas.stat import (AttachmentRowOut, CamelModel,
                                  FileCreationRowOut, MailOpeningOut,
                                  RejectRowOut)


class PersonRef(CamelModel):
    id: int
    name: str
    first_name: str
    surname: str
    email: str


class UrgencyCounts(BaseModel):
    regular: int = 0
    urgent: int = 0


class FileCreationCounts(BaseModel):
    individual: UrgencyCounts = Field(default_factory=UrgencyCounts)
    family: UrgencyCounts = Field(default_factory=UrgencyCounts)


class ChecklistCounts(BaseModel):
    NATP: int = 0
    RTD: int = 0
    COI: int = 0
    NONE: int = 0


class StatCounts(CamelModel):
    file_creation: FileCreationCounts
    attachments: UrgencyCounts
    rejects: int
    checklist: ChecklistCounts


class AggregatedStat(CamelModel):
    id: int
    date: str
    start_time: str = Field(alias="start_time")
    end_time: str = Field(alias="end_time")
    created_at: datetime | None = Field(default=None, alias="created_at")
    updated_at: datetime | None = Field(default=None, alias="updated_at")
    user: PersonRef
    team_leader: PersonRef | None = None
    mail_opening: MailOpeningOut
    counts: StatCounts
    file_creation_rows: list[FileCreationRowOut] | None = None
    attachments_rows: list[AttachmentRowOut] | None = None
    reject_rows: list[RejectRowOut] | None = None


class AggregationResponse(CamelModel):
    page: int
    page_size: int
    total: int
    stats: list[AggregatedStat]
