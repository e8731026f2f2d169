"""
Outbound email service (SendGrid).

Delivers the report email to the resolved authority with the report photos
attached. Provider errors are re-raised as EmailDeliveryError carrying the
provider's message verbatim; the submission pipeline stores that message as
the report's failure reason.
"""

import base64
import html
import logging
import os
import threading
from typing import List, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment,
    Disposition,
    FileContent,
    FileName,
    FileType,
    Mail,
    ReplyTo,
)

from app.models.attachment import PhotoAttachment

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_FROM = "FixLocal Reports <reports@fixlocal.app>"


class EmailDeliveryError(Exception):
    """The email provider rejected or failed to deliver a message."""


# ---------------------------------------------------------------------------
# Lazy SendGrid client
# ---------------------------------------------------------------------------

_client_lock = threading.Lock()
_client: Optional[SendGridAPIClient] = None


def get_sendgrid_client() -> SendGridAPIClient:
    """Return the shared SendGrid client, creating it on first use."""
    global _client

    if _client is not None:
        return _client

    with _client_lock:
        if _client is None:
            api_key = os.getenv("SENDGRID_API_KEY")
            if not api_key:
                raise EmailDeliveryError("SENDGRID_API_KEY is not configured.")
            _client = SendGridAPIClient(api_key)

    return _client


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def body_to_html(body: str) -> str:
    """Render a plain-text body as HTML: one <p> per non-blank line, <br /> for blanks."""
    return "".join(
        f"<p>{line}</p>" if line.strip() else "<br />"
        for line in html.escape(body).split("\n")
    )


def attachment_filename(photo: PhotoAttachment, index: int) -> str:
    return photo.filename or f"issue-{index + 1}.jpg"


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class SendGridEmailDispatcher:
    """Sends authority emails through SendGrid."""

    def __init__(self, client: Optional[SendGridAPIClient] = None):
        self._client = client

    @property
    def client(self) -> SendGridAPIClient:
        return self._client if self._client is not None else get_sendgrid_client()

    def _build_message(
        self,
        to: str,
        subject: str,
        text_body: str,
        html_body: str,
        attachments: List[PhotoAttachment],
    ) -> Mail:
        message = Mail(
            from_email=os.getenv("EMAIL_FROM") or DEFAULT_EMAIL_FROM,
            to_emails=to,
            subject=subject,
            plain_text_content=text_body,
            html_content=html_body,
        )

        reply_to = os.getenv("EMAIL_REPLY_TO")
        if reply_to:
            message.reply_to = ReplyTo(reply_to)

        for index, photo in enumerate(attachments):
            message.add_attachment(
                Attachment(
                    FileContent(base64.b64encode(photo.content).decode()),
                    FileName(attachment_filename(photo, index)),
                    FileType(photo.content_type),
                    Disposition("attachment"),
                )
            )

        return message

    def send(
        self,
        to: str,
        subject: str,
        text_body: str,
        html_body: str,
        attachments: List[PhotoAttachment],
    ) -> Optional[str]:
        """
        Send one email and return the provider message id (None if not reported).

        Raises:
            EmailDeliveryError: On any provider or transport failure
        """
        message = self._build_message(to, subject, text_body, html_body, attachments)

        try:
            response = self.client.send(message)
        except EmailDeliveryError:
            raise
        except Exception as e:
            raise EmailDeliveryError(str(e) or "Failed to send email.") from e

        if response.status_code not in (200, 202):
            raise EmailDeliveryError(f"SendGrid returned HTTP {response.status_code}")

        message_id = (response.headers or {}).get("X-Message-Id")
        logger.info(f"Email sent to {to} (message id {message_id})")
        return message_id


def send_authority_email(
    dispatcher,
    to: str,
    subject: str,
    body: str,
    photos: List[PhotoAttachment],
) -> Optional[str]:
    """Send the report email with both plain-text and HTML bodies."""
    return dispatcher.send(
        to=to,
        subject=subject,
        text_body=body,
        html_body=body_to_html(body),
        attachments=photos,
    )
