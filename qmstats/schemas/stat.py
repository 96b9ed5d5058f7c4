"""Pydantic schemas for stat payloads and single-stat responses.

Wire format is camelCase (``startTime``, ``mailOpening``...), except the
timestamp fields on responses which keep their column names
(``start_time``, ``created_at``...) as the clients expect.
"""

from __future__ import annotations

import re
from datetime import date as date_type
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")

# Reason catalog offered by the reject form; reasons are stored as free text
REJECT_REASON_GROUPS: list[tuple[str, list[str]]] = [
    (
        "1. A copy of the valid immigration status document is required:",
        [
            "No valid or acceptable immigration status document was submitted",
            "Permanent Resident IDs - Front and Back Copies required",
            "Permanent Resident IDs - Expired",
        ],
    ),
    (
        "2. The “Declaration of Guarantor” (section 2) on your application form:",
        ["Is incomplete", "Is not signed", "Date omitted", "The guarantor is not admissible"],
    ),
    (
        "3. References:",
        [
            "Two (2) persons who are neither your relatives nor your Guarantor.",
            "The Relationship between Applicants and References needs to be stated",
        ],
    ),
    (
        "4. Additional Supplementary documents required to support your identity:",
        [
            "No valid or acceptable supplementary identification documents were submitted",
            "Supplementary IDs – Expired",
            "The copies … not certified",
        ],
    ),
    (
        "5. Your statutory Declaration in Lieu of Guarantor (Form PPTC 326) submitted:",
        [
            "Is not signed by the applicant",
            "It is not signed by the official authorized by law",
            "Is incomplete",
            "The PPTC 132 form is not accepted",
        ],
    ),
    (
        "6. The Travel Document application is incomplete, or the wrong application form was submitted:",
        ["No signature and date on the form", "The wrong application form was completed"],
    ),
    (
        "7. The Photographs:",
        [
            "Have not been submitted",
            "Only 1 photo submitted",
            "Do not meet Passport Canada Photo Specification",
            "Not certified",
            "Older than 6 months",
            "No date",
            "Name of photo provider – not provided",
        ],
    ),
    (
        "8. Fees:",
        ["Adult fee – $120", "Child fee – $57", "Family Pay", "Wrong pay/Receipt"],
    ),
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Payload ─────────────────────────────────────────────────────────
class Checks(CamelModel):
    natp: bool = False
    rtd: bool = False
    coi: bool = False
    none: bool = False

    @model_validator(mode="after")
    def _none_is_exclusive(self) -> "Checks":
        if self.none and (self.natp or self.rtd or self.coi):
            raise ValueError("'none' cannot be combined with NATP, RTD or COI")
        return self


class _CheckedRow(CamelModel):
    row_index: int = Field(ge=0)
    value: int = 0
    checks: Checks = Field(default_factory=Checks)

    @field_validator("value", mode="before")
    @classmethod
    def _blank_is_zero(cls, v: object) -> object:
        # Empty inputs mean "not considered"
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v

    @field_validator("value")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be zero or positive")
        return v


class FileCreationRowIn(_CheckedRow):
    category: str
    urgency: str
    group_index: int | None = None

    @field_validator("category")
    @classmethod
    def _validate_category(cls, v: str) -> str:
        if v not in ("individual", "family"):
            raise ValueError("category must be 'individual' or 'family'")
        return v

    @field_validator("urgency")
    @classmethod
    def _validate_urgency(cls, v: str) -> str:
        if v not in ("regular", "urgent"):
            raise ValueError("urgency must be 'regular' or 'urgent'")
        return v

    @model_validator(mode="after")
    def _group_only_for_family(self) -> "FileCreationRowIn":
        if self.category == "individual" and self.group_index is not None:
            raise ValueError("groupIndex is only allowed on family rows")
        return self


class AttachmentRowIn(_CheckedRow):
    urgency: str = "regular"

    @field_validator("urgency")
    @classmethod
    def _validate_urgency(cls, v: str) -> str:
        if v not in ("regular", "urgent"):
            raise ValueError("urgency must be 'regular' or 'urgent'")
        return v


class RejectRowIn(_CheckedRow):
    reasons: list[str] = Field(default_factory=list)

    @field_validator("reasons")
    @classmethod
    def _drop_blank_reasons(cls, v: list[str]) -> list[str]:
        return [r.strip() for r in v if r and r.strip()]


class MailOpeningIn(CamelModel):
    total_envelopes: int = Field(default=0, ge=0)
    file_creation: int = Field(default=0, ge=0)
    urgent_file_creation: int = Field(default=0, ge=0)
    attachment: int = Field(default=0, ge=0)
    urgent_attachment: int = Field(default=0, ge=0)
    rejects: int = Field(default=0, ge=0)
    wrong_mail: int = Field(default=0, ge=0)
    withdraw_letter: int = Field(default=0, ge=0)


class ProcessedIn(CamelModel):
    tl_count: int = Field(default=0, ge=0)

    @field_validator("tl_count", mode="before")
    @classmethod
    def _blank_is_zero(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v


class StatUpdate(CamelModel):
    """Body of ``PUT /stats/{id}``; also the shared part of a create."""

    date: str
    start_time: str
    end_time: str
    mail_opening: MailOpeningIn
    file_creation_rows: list[FileCreationRowIn] = Field(default_factory=list)
    attachments_rows: list[AttachmentRowIn] = Field(default_factory=list)
    reject_rows: list[RejectRowIn] = Field(default_factory=list)
    processed: ProcessedIn = Field(default_factory=ProcessedIn)

    @field_validator("date")
    @classmethod
    def _validate_date(cls, v: str) -> str:
        try:
            return date_type.fromisoformat(v.strip()[:10]).isoformat()
        except ValueError as exc:
            raise ValueError("date must be YYYY-MM-DD") from exc

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_time(cls, v: str) -> str:
        v = v.strip()
        if not _TIME_RE.match(v):
            raise ValueError("time must be HH:MM")
        return v[:5]

    @model_validator(mode="after")
    def _start_before_end(self) -> "StatUpdate":
        if self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        return self


class StatCreate(StatUpdate):
    id: int = Field(gt=0)


# ── Responses ───────────────────────────────────────────────────────
class MailOpeningOut(CamelModel):
    total_envelopes: int = 0
    file_creation: int = 0
    urgent_file_creation: int = 0
    attachment: int = 0
    urgent_attachment: int = 0
    rejects: int = 0
    wrong_mail: int = 0
    withdraw_letter: int = 0


class FileCreationRowOut(CamelModel):
    category: str
    urgency: str
    group_index: int | None
    row_index: int
    value: int
    natp: bool
    rtd: bool
    coi: bool
    none: bool


class AttachmentRowOut(CamelModel):
    urgency: str
    row_index: int
    value: int
    natp: bool
    rtd: bool
    coi: bool
    none: bool


class RejectRowOut(CamelModel):
    row_index: int
    value: int
    natp: bool
    rtd: bool
    coi: bool
    none: bool
    reasons: list[str]


class ProcessedOut(CamelModel):
    file_creation_total: int = 0
    attachments_total: int = 0
    rejects_total: int = 0
    total_processed: int = 0
    natp_total: int = 0
    rtd_total: int = 0
    coi_total: int = 0
    none_total: int = 0
    tl_count: int = 0


class StatSummary(CamelModel):
    id: int
    date: str
    start_time: str = Field(alias="start_time")
    end_time: str = Field(alias="end_time")
    mail_opening: MailOpeningOut
    created_at: datetime | None = Field(default=None, alias="created_at")
    updated_at: datetime | None = Field(default=None, alias="updated_at")


class StatDetail(StatSummary):
    file_creation_rows: list[FileCreationRowOut]
    attachments_rows: list[AttachmentRowOut]
    reject_rows: list[RejectRowOut]
    processed: ProcessedOut
    read_only: bool
    # "permission" (viewed by a manager) | "expired" (edit window closed)
    read_only_reason: str | None = None


class StatListResponse(BaseModel):
    stats: list[StatSummary]


class StatDetailResponse(BaseModel):
    stat: StatDetail


class StatSavedResponse(CamelModel):
    success: bool = True
    id: int
