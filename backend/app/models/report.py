"""
Pydantic models for civic issue reports.

Python attributes and database columns are snake_case. The mobile client
speaks camelCase, so every model here serializes with camelCase aliases
while still accepting snake_case rows straight from Supabase.
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class IssueType(str, Enum):
    POTHOLE = "Pothole"
    STREETLIGHT_OUT = "Streetlight Out"
    GRAFFITI = "Graffiti"
    ILLEGAL_DUMPING = "Illegal Dumping"
    ROAD_SIGN_DAMAGE = "Road Sign Damage"
    OTHER = "Other"


class ReportStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class AuthoritySource(str, Enum):
    """Which matching tier produced an Authority."""
    EXACT = "exact"
    CITY_FALLBACK = "city_fallback"
    DEFAULT = "default"


class DraftStrategy(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"


class SubmissionMode(str, Enum):
    PREVIEW = "preview"
    SEND = "send"


class CamelModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python and the DB."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Submission payload
# ---------------------------------------------------------------------------

class Location(CamelModel):
    """Where the issue was observed. Immutable once submitted."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip: str = Field(min_length=3, max_length=12)
    formatted_address: Optional[str] = None

    @field_validator("formatted_address")
    @classmethod
    def blank_address_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class ReportPayload(CamelModel):
    """Validated report fields submitted with POST /api/report."""
    user_id: str = Field(min_length=1)
    issue_type: IssueType
    notes: Optional[str] = Field(default=None, max_length=2000)
    location: Location

    @field_validator("user_id")
    @classmethod
    def user_id_must_be_uuid(cls, v: str) -> str:
        # Supabase auth user ids are UUIDs; anything else can't match a token sub.
        try:
            uuid.UUID(v)
        except ValueError:
            raise ValueError("userId must be a UUID")
        return v


class DraftOverrides(CamelModel):
    """Caller-edited subject/body sent back after a preview."""
    subject: Optional[str] = Field(default=None, max_length=150)
    body: Optional[str] = Field(default=None, max_length=5000)

    def resolve(self, generated_subject: str, generated_body: str) -> tuple[str, str]:
        """
        Return the (subject, body) pair to send.

        Overrides only apply when both are non-blank after trimming; a lone
        subject or body edit is ignored in favour of the generated pair.
        """
        subject = (self.subject or "").strip()
        body = (self.body or "").strip()
        if subject and body:
            return subject, body
        return generated_subject, generated_body


# ---------------------------------------------------------------------------
# Authorities
# ---------------------------------------------------------------------------

class AuthorityRecord(BaseModel):
    """Row from the authorities table."""
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    city: str
    state: str
    zip: Optional[str] = None
    is_default: bool = False


class Authority(CamelModel):
    """Contact a report is routed to, plus the tier that matched it."""
    name: str
    email: str
    phone: Optional[str] = None
    source: AuthoritySource

    @classmethod
    def from_record(cls, record: AuthorityRecord, source: AuthoritySource) -> "Authority":
        return cls(name=record.name, email=record.email, phone=record.phone, source=source)


# ---------------------------------------------------------------------------
# Email drafts
# ---------------------------------------------------------------------------

class EmailDraft(CamelModel):
    subject: str
    body: str
    strategy: DraftStrategy
    fallback_reason: Optional[str] = None


class GeneratedEmail(BaseModel):
    """Schema the AI output must satisfy before it is used."""
    model_config = ConfigDict(extra="forbid")

    subject: str = Field(min_length=5, max_length=150)
    body: str = Field(min_length=30, max_length=5000)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class ReportCreate(BaseModel):
    """
    Internal model for inserting a queued report row.

    Image URLs are omitted: they are attached after the photos are uploaded,
    which needs the report id for the storage path.
    """
    user_id: str
    issue_type: IssueType
    notes: Optional[str] = None
    latitude: float
    longitude: float
    city: str
    state: str
    zip: str
    formatted_address: Optional[str] = None
    authority_name: str
    authority_email: str
    authority_phone: Optional[str] = None
    authority_source: AuthoritySource
    email_subject: str
    email_body: str

    @classmethod
    def from_submission(
        cls,
        payload: ReportPayload,
        authority: Authority,
        subject: str,
        body: str,
    ) -> "ReportCreate":
        location = payload.location
        return cls(
            user_id=payload.user_id,
            issue_type=payload.issue_type,
            notes=payload.notes,
            latitude=location.latitude,
            longitude=location.longitude,
            city=location.city,
            state=location.state,
            zip=location.zip,
            formatted_address=location.formatted_address,
            authority_name=authority.name,
            authority_email=authority.email,
            authority_phone=authority.phone,
            authority_source=authority.source,
            email_subject=subject,
            email_body=body,
        )


class Report(CamelModel):
    """Full report record from the database."""
    id: str
    user_id: str
    issue_type: IssueType
    notes: Optional[str] = None
    latitude: float
    longitude: float
    city: str
    state: str
    zip: str
    formatted_address: Optional[str] = None
    authority_name: str
    authority_email: str
    authority_phone: Optional[str] = None
    authority_source: AuthoritySource
    email_subject: str
    email_body: str
    status: ReportStatus
    failure_reason: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    thumbnail_url: Optional[str] = None
    created_at: str
    sent_at: Optional[str] = None


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------

class EmailPreview(CamelModel):
    subject: str
    body: str


class GenerationInfo(CamelModel):
    strategy: DraftStrategy
    fallback_reason: Optional[str] = None


class ReportResponse(CamelModel):
    """
    Body returned by POST /api/report.

    report is None for previews. error is set only when the email could not
    be delivered (the report is then already marked failed).
    """
    report: Optional[Report] = None
    email_preview: EmailPreview
    authority: Optional[Authority] = None
    generation: Optional[GenerationInfo] = None
    error: Optional[str] = None


class ReportsListResponse(CamelModel):
    reports: List[Report]
