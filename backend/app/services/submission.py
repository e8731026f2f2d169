"""
Report submission pipeline.

One request = one independent unit of work:

  resolve authority → generate draft → (preview: stop)
  send: create queued report → upload photos → attach image URLs
        → dispatch email → mark sent | mark failed

Only the dispatch step has a recovery action: a delivery error marks the
report failed (with the provider's message as failure_reason) and is returned
to the caller as a FAILED outcome. Upload and repository errors propagate
unchanged, so a crash between steps can leave a queued report behind.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool

from app.models.attachment import PhotoAttachment
from app.models.report import (
    Authority,
    DraftOverrides,
    EmailDraft,
    EmailPreview,
    GenerationInfo,
    Report,
    ReportCreate,
    ReportPayload,
    ReportResponse,
    SubmissionMode,
)
from app.services.email_draft import EmailDraftInput, generate_email_draft
from app.services.email_sender import send_authority_email
from app.services.storage import upload_report_photos

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """The submission request violates a pipeline precondition."""


class SubmissionOutcome(str, Enum):
    PREVIEW = "preview"
    SENT = "sent"
    FAILED = "failed"


_STATUS_CODES = {
    SubmissionOutcome.PREVIEW: 200,
    SubmissionOutcome.SENT: 201,
    SubmissionOutcome.FAILED: 502,
}


@dataclass
class SubmissionRequest:
    payload: ReportPayload
    photos: List[PhotoAttachment]
    overrides: DraftOverrides = field(default_factory=DraftOverrides)


@dataclass
class SubmissionResult:
    outcome: SubmissionOutcome
    authority: Authority
    draft: EmailDraft
    subject: str
    body: str
    report: Optional[Report] = None
    error: Optional[str] = None

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.outcome]

    def to_response(self) -> ReportResponse:
        return ReportResponse(
            report=self.report,
            email_preview=EmailPreview(subject=self.subject, body=self.body),
            authority=self.authority,
            generation=GenerationInfo(
                strategy=self.draft.strategy,
                fallback_reason=self.draft.fallback_reason,
            ),
            error=self.error,
        )


class SubmissionOrchestrator:
    """
    Runs the submission pipeline over injected collaborators.

    Args:
        resolver: AuthorityResolver (resolve(location) -> Authority)
        reports: report repository (create_queued / attach_images / mark_sent / mark_failed)
        photo_store: photo store (upload(content, content_type, path) -> public URL)
        dispatcher: email dispatcher (send(to, subject, text_body, html_body, attachments))
        draft_email: draft generator, generate_email_draft unless a test swaps it
    """

    def __init__(
        self,
        resolver,
        reports,
        photo_store,
        dispatcher,
        draft_email: Callable[[EmailDraftInput], EmailDraft] = generate_email_draft,
    ):
        self.resolver = resolver
        self.reports = reports
        self.photo_store = photo_store
        self.dispatcher = dispatcher
        self.draft_email = draft_email

    async def submit(self, request: SubmissionRequest, mode: SubmissionMode) -> SubmissionResult:
        if not request.photos:
            raise SubmissionError("At least one image must be provided.")

        payload = request.payload

        # Step 1: authority
        authority = await run_in_threadpool(self.resolver.resolve, payload.location)

        # Step 2: draft (never raises)
        draft = await run_in_threadpool(
            self.draft_email,
            EmailDraftInput(
                issue_type=payload.issue_type,
                notes=payload.notes,
                location=payload.location,
                authority=authority,
                photo_count=len(request.photos),
            ),
        )
        subject, body = request.overrides.resolve(draft.subject, draft.body)

        # Step 3: preview stops before any side effect
        if mode == SubmissionMode.PREVIEW:
            return SubmissionResult(
                outcome=SubmissionOutcome.PREVIEW,
                authority=authority,
                draft=draft,
                subject=subject,
                body=body,
            )

        return await self._send(request, authority, draft, subject, body)

    async def _send(
        self,
        request: SubmissionRequest,
        authority: Authority,
        draft: EmailDraft,
        subject: str,
        body: str,
    ) -> SubmissionResult:
        payload = request.payload

        report = await run_in_threadpool(
            self.reports.create_queued,
            ReportCreate.from_submission(payload, authority, subject, body),
        )

        image_urls = await upload_report_photos(
            self.photo_store, request.photos, payload.user_id, report.id
        )
        report = await run_in_threadpool(self.reports.attach_images, report.id, image_urls)

        try:
            await run_in_threadpool(
                send_authority_email,
                self.dispatcher,
                authority.email,
                subject,
                body,
                request.photos,
            )
        except Exception as e:
            reason = str(e) or "Unknown delivery error"
            logger.error(f"Email delivery failed for report {report.id}: {reason}")
            report = await run_in_threadpool(self.reports.mark_failed, report.id, reason)
            return SubmissionResult(
                outcome=SubmissionOutcome.FAILED,
                authority=authority,
                draft=draft,
                subject=subject,
                body=body,
                report=report,
                error=reason,
            )

        report = await run_in_threadpool(self.reports.mark_sent, report.id)
        return SubmissionResult(
            outcome=SubmissionOutcome.SENT,
            authority=authority,
            draft=draft,
            subject=subject,
            body=body,
            report=report,
        )
