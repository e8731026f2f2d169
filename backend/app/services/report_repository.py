"""
Report repository (Supabase reports table).

Owns the report lifecycle writes:

  create_queued  → status=queued, no images
  attach_images  → image_urls + thumbnail_url (first image)
  mark_sent      → status=sent,   sent_at=now, failure_reason cleared
  mark_failed    → status=failed, failure_reason set, sent_at cleared

mark_sent / mark_failed only match rows that are still queued, so a report
never moves out of sent or failed. Every write returns the updated row.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from supabase import Client

from app.db import require_admin_client
from app.models.report import Report, ReportCreate, ReportStatus

logger = logging.getLogger(__name__)

_REPORT_COLUMNS = ", ".join([
    "id",
    "user_id",
    "issue_type",
    "notes",
    "latitude",
    "longitude",
    "city",
    "state",
    "zip",
    "formatted_address",
    "authority_name",
    "authority_email",
    "authority_phone",
    "authority_source",
    "email_subject",
    "email_body",
    "status",
    "failure_reason",
    "image_urls",
    "thumbnail_url",
    "created_at",
    "sent_at",
])


class ReportRepositoryError(Exception):
    """A reports table read or write failed, or returned no row."""


class SupabaseReportRepository:

    def __init__(self, client: Optional[Client] = None):
        self.client = client if client is not None else require_admin_client()

    def _single(self, query, action: str) -> Report:
        try:
            result = query.execute()
        except Exception as e:
            raise ReportRepositoryError(f"Failed to {action}: {str(e)}") from e

        if not result.data:
            raise ReportRepositoryError(f"Failed to {action}: No row returned.")
        return Report(**result.data[0])

    def _transition(self, report_id: str, values: dict, action: str) -> Report:
        query = (
            self.client.table("reports")
            .update(values)
            .eq("id", report_id)
            .eq("status", ReportStatus.QUEUED.value)
        )
        report = self._single(query, action)
        logger.info(f"Report {report_id} -> {report.status.value}")
        return report

    def create_queued(self, fields: ReportCreate) -> Report:
        row = fields.model_dump(mode="json")
        row.update({
            "status": ReportStatus.QUEUED.value,
            "image_urls": [],
            "thumbnail_url": None,
        })
        query = self.client.table("reports").insert(row)
        report = self._single(query, "create report")
        logger.info(f"Report {report.id} queued for {report.authority_email}")
        return report

    def attach_images(self, report_id: str, image_urls: List[str]) -> Report:
        query = (
            self.client.table("reports")
            .update({
                "image_urls": image_urls,
                "thumbnail_url": image_urls[0] if image_urls else None,
            })
            .eq("id", report_id)
        )
        return self._single(query, "save report photos")

    def mark_sent(self, report_id: str) -> Report:
        return self._transition(
            report_id,
            {
                "status": ReportStatus.SENT.value,
                "sent_at": datetime.now(timezone.utc).isoformat(),
                "failure_reason": None,
            },
            "mark report sent",
        )

    def mark_failed(self, report_id: str, failure_reason: str) -> Report:
        return self._transition(
            report_id,
            {
                "status": ReportStatus.FAILED.value,
                "failure_reason": failure_reason,
                "sent_at": None,
            },
            "mark report failed",
        )

    def list_for_user(self, user_id: str) -> List[Report]:
        """All of a user's reports, newest first. No reports is an empty list."""
        try:
            result = (
                self.client.table("reports")
                .select(_REPORT_COLUMNS)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise ReportRepositoryError(f"Failed to fetch reports: {str(e)}") from e

        return [Report(**row) for row in result.data or []]
