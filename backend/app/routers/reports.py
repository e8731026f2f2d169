"""
Report submission API endpoints.

  POST /report   - preview or send a civic issue report (multipart)
  GET  /reports  - list the caller's reports, newest first
"""

import json
import logging
import uuid
from typing import Any, Iterable, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from app.auth import get_current_user, require_same_user
from app.models.attachment import PhotoAttachment
from app.models.report import (
    DraftOverrides,
    ReportPayload,
    ReportResponse,
    ReportsListResponse,
    SubmissionMode,
)
from app.services.authority import AuthorityResolver, SupabaseAuthorityDirectory
from app.services.email_sender import SendGridEmailDispatcher
from app.services.rate_limit import report_rate_limit
from app.services.report_repository import SupabaseReportRepository
from app.services.storage import SupabasePhotoStore
from app.services.submission import (
    SubmissionError,
    SubmissionOrchestrator,
    SubmissionRequest,
)

router = APIRouter()

logger = logging.getLogger(__name__)

MAX_PHOTOS = 4
MAX_PHOTO_BYTES = 8 * 1024 * 1024


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_report_repository() -> SupabaseReportRepository:
    return SupabaseReportRepository()


def get_submission_orchestrator() -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        resolver=AuthorityResolver(SupabaseAuthorityDirectory()),
        reports=SupabaseReportRepository(),
        photo_store=SupabasePhotoStore(),
        dispatcher=SendGridEmailDispatcher(),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def validation_error_detail(errors: Iterable[dict]) -> dict:
    """Reduce pydantic/FastAPI errors to JSON-safe loc/msg/type entries."""
    return {
        "message": "Validation failed.",
        "errors": [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in errors
        ],
    }


def _parse_location(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Malformed location JSON.")


async def _read_photos(files: List[UploadFile]) -> List[PhotoAttachment]:
    """
    Read uploaded image parts into memory.

    Parts whose content type is not image/* are skipped. More than MAX_PHOTOS
    parts, or any image over MAX_PHOTO_BYTES, rejects the whole request.
    """
    if len(files) > MAX_PHOTOS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_PHOTOS} photos may be attached.")

    photos: List[PhotoAttachment] = []
    for file in files:
        content_type = (file.content_type or "").lower()
        if not content_type.startswith("image/"):
            logger.info(f"Skipping non-image upload {file.filename!r} ({content_type!r})")
            continue

        too_large = HTTPException(
            status_code=400,
            detail=f"Photo {file.filename!r} exceeds the 8 MB limit.",
        )
        if file.size is not None and file.size > MAX_PHOTO_BYTES:
            raise too_large

        # One byte past the limit is enough to detect an oversized part
        content = await file.read(MAX_PHOTO_BYTES + 1)
        if len(content) > MAX_PHOTO_BYTES:
            raise too_large

        photos.append(
            PhotoAttachment(
                filename=file.filename or "",
                content=content,
                content_type=content_type,
            )
        )

    return photos


def _parse_mode(raw: Optional[str]) -> SubmissionMode:
    try:
        return SubmissionMode((raw or SubmissionMode.SEND.value).strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail="mode must be 'preview' or 'send'.")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/report",
    response_model=ReportResponse,
    responses={
        200: {"description": "Preview: draft and resolved authority, nothing persisted"},
        201: {"description": "Report created and emailed to the authority"},
        400: {"description": "Invalid payload, location, mode or photos"},
        401: {"description": "Missing or invalid auth token"},
        403: {"description": "userId does not match the authenticated user"},
        429: {"description": "Too many report requests from this client"},
        502: {"description": "Report created but the email could not be delivered"},
    },
)
async def submit_report(
    response: Response,
    auth_user_id: str = Depends(get_current_user),
    _rate_limit: None = Depends(report_rate_limit),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
    photos: Optional[List[UploadFile]] = File(None),
    user_id: str = Form(..., alias="userId"),
    issue_type: str = Form(..., alias="issueType"),
    location: str = Form(...),
    notes: Optional[str] = Form(None),
    mode: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    body: Optional[str] = Form(None),
):
    """
    Submit a civic issue report.

    mode=preview resolves the authority and drafts the email without storing
    anything. mode=send (default) also stores the report and photos and emails
    the authority. subject/body replace the generated draft only when both
    are provided and non-blank.

    Requires authentication. userId must be the authenticated user.
    """
    attachments = await _read_photos(photos or [])
    if not attachments:
        raise HTTPException(status_code=400, detail="At least one image must be provided.")

    try:
        payload = ReportPayload(
            user_id=user_id,
            issue_type=issue_type,
            notes=notes,
            location=_parse_location(location),
        )
        overrides = DraftOverrides(subject=subject, body=body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=validation_error_detail(e.errors()))

    submission_mode = _parse_mode(mode)
    require_same_user(auth_user_id, payload.user_id, "payload")

    try:
        result = await orchestrator.submit(
            SubmissionRequest(payload=payload, photos=attachments, overrides=overrides),
            submission_mode,
        )
    except SubmissionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response.status_code = result.status_code
    return result.to_response()


@router.get(
    "/reports",
    response_model=ReportsListResponse,
    responses={
        400: {"description": "userId missing or not a UUID"},
        401: {"description": "Missing or invalid auth token"},
        403: {"description": "userId does not match the authenticated user"},
    },
)
async def list_reports(
    user_id: str = Query(..., alias="userId"),
    auth_user_id: str = Depends(get_current_user),
    reports: SupabaseReportRepository = Depends(get_report_repository),
):
    """
    List the authenticated user's reports, newest first.

    Requires authentication. userId must be the authenticated user.
    """
    try:
        uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="userId must be a UUID")

    require_same_user(auth_user_id, user_id, "query")

    user_reports = await run_in_threadpool(reports.list_for_user, user_id)
    return ReportsListResponse(reports=user_reports)
