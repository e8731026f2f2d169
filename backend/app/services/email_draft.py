"""
Email draft generation service.

Produces the subject/body sent to the authority. Claude writes the draft when
ANTHROPIC_API_KEY is configured; any problem on that path (missing key, API
error, empty or malformed output, length violations) falls back to a
deterministic template. generate_email_draft never raises.
"""

import json
import logging
import os
import threading
from typing import Any, Optional

import anthropic

from app.models.report import (
    Authority,
    CamelModel,
    DraftStrategy,
    EmailDraft,
    GeneratedEmail,
    IssueType,
    Location,
)

logger = logging.getLogger(__name__)

# Model configuration
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
MAX_TOKENS = 1024
TEMPERATURE = 0.2

SYSTEM_PROMPT = " ".join([
    "You are a civic reporting assistant.",
    "Write concise, professional emails to municipal departments.",
    "Respond only by calling the compose_email tool with a subject and a body.",
    "Do not include markdown or placeholders.",
])

EMAIL_TOOL = {
    "name": "compose_email",
    "description": "Return the email to send to the municipal department.",
    "input_schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "subject": {"type": "string"},
            "body": {"type": "string"},
        },
        "required": ["subject", "body"],
    },
}

NO_NOTES_TEXT = "No additional notes were provided by the reporter."


class EmailDraftInput(CamelModel):
    """Everything the draft is written from."""
    issue_type: IssueType
    notes: Optional[str] = None
    location: Location
    authority: Authority
    photo_count: int


# ---------------------------------------------------------------------------
# Lazy Anthropic client (process-wide, initialized at most once)
# ---------------------------------------------------------------------------

_client_lock = threading.Lock()
_client: Optional[anthropic.Anthropic] = None
_client_initialized = False


def get_anthropic_client() -> Optional[anthropic.Anthropic]:
    """
    Return the shared Anthropic client, or None when ANTHROPIC_API_KEY is unset.

    The first call decides; later calls return the cached handle without
    re-reading the environment.
    """
    global _client, _client_initialized

    if _client_initialized:
        return _client

    with _client_lock:
        if not _client_initialized:
            api_key = os.getenv("ANTHROPIC_API_KEY")
            _client = anthropic.Anthropic(api_key=api_key) if api_key else None
            _client_initialized = True

    return _client


# ---------------------------------------------------------------------------
# Deterministic fallback
# ---------------------------------------------------------------------------

def _location_line(location: Location) -> str:
    place = f"{location.city}, {location.state} {location.zip}"
    if location.formatted_address:
        return f"{location.formatted_address} ({place})"
    return place


def _fallback_body(draft_input: EmailDraftInput) -> str:
    notes = (draft_input.notes or "").strip() or NO_NOTES_TEXT
    location = draft_input.location

    return "\n".join([
        f"Dear {draft_input.authority.name},",
        "",
        "I am writing to report a civic issue that needs attention.",
        "",
        f"Issue type: {draft_input.issue_type.value}",
        f"Location: {_location_line(location)}",
        f"Coordinates: {location.latitude:.6f}, {location.longitude:.6f}",
        f"Photo attachments: {draft_input.photo_count}",
        "",
        "Details from reporter:",
        notes,
        "",
        "Please route this request to the appropriate team and share any next steps.",
        "",
        "Thank you,",
        "FixLocal Reporter",
    ])


def build_fallback_draft(draft_input: EmailDraftInput) -> EmailDraft:
    """Template draft. Pure function of its input; never raises."""
    location = draft_input.location
    return EmailDraft(
        subject=f"{draft_input.issue_type.value} report near {location.city}, {location.state}",
        body=_fallback_body(draft_input),
        strategy=DraftStrategy.FALLBACK,
    )


def _fallback(draft_input: EmailDraftInput, reason: str) -> EmailDraft:
    logger.warning(f"Using fallback email draft: {reason}")
    draft = build_fallback_draft(draft_input)
    draft.fallback_reason = reason
    return draft


# ---------------------------------------------------------------------------
# AI draft
# ---------------------------------------------------------------------------

def _strip_code_fences(text: str) -> str:
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        return "\n".join(lines).strip()
    return text


def _extract_email_payload(response: Any) -> Any:
    """
    Pull the structured email out of a Messages API response.

    Prefers the compose_email tool call; a plain JSON text reply is accepted
    too. Raises ValueError when the response carries nothing usable.
    """
    text_parts = []
    for block in response.content or []:
        block_type = getattr(block, "type", None)
        if block_type == "tool_use" and getattr(block, "name", None) == EMAIL_TOOL["name"]:
            if not block.input:
                raise ValueError("AI returned an empty response.")
            return block.input
        if block_type == "text" and block.text:
            text_parts.append(block.text)

    output_text = _strip_code_fences("\n".join(text_parts).strip())
    if not output_text:
        raise ValueError("AI returned an empty response.")

    return json.loads(output_text)


def _prompt_context(draft_input: EmailDraftInput) -> str:
    return json.dumps(draft_input.model_dump(mode="json", by_alias=True))


def generate_email_draft(
    draft_input: EmailDraftInput,
    client: Optional[anthropic.Anthropic] = None,
) -> EmailDraft:
    """
    Generate the email draft, preferring Claude and falling back to the template.

    Args:
        draft_input: issue context
        client: Anthropic client to use; defaults to the shared lazy client

    Returns:
        EmailDraft with strategy=ai, or strategy=fallback plus fallback_reason.
    """
    ai_client = client if client is not None else get_anthropic_client()
    if ai_client is None:
        return _fallback(draft_input, "ANTHROPIC_API_KEY is not configured.")

    try:
        response = ai_client.messages.create(
            model=os.getenv("ANTHROPIC_MODEL") or DEFAULT_MODEL,
            max_tokens=MAX_TOKENS,
            temperature=TEMPERATURE,
            system=SYSTEM_PROMPT,
            tools=[EMAIL_TOOL],
            tool_choice={"type": "tool", "name": EMAIL_TOOL["name"]},
            messages=[{"role": "user", "content": _prompt_context(draft_input)}],
        )
        generated = GeneratedEmail.model_validate(_extract_email_payload(response))
    except Exception as e:
        return _fallback(draft_input, str(e) or "Unknown generation error.")

    return EmailDraft(
        subject=generated.subject,
        body=generated.body,
        strategy=DraftStrategy.AI,
    )
