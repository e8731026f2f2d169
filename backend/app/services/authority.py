"""
Authority resolution service.

Maps a report location to the municipal contact the email is sent to.
Matching tiers, in strict priority order:

  1. exact          - authority whose zip equals the first 5 chars of the location zip
  2. city_fallback  - authority whose city AND state match (case-insensitive)
  3. default        - the authority row flagged is_default
  4. default        - static contact from DEFAULT_CONTACT_NAME / DEFAULT_CONTACT_EMAIL

"Not found" is never an error here: each tier returns None and the next tier
is tried. Only storage/transport failures raise (AuthorityLookupError).
"""

import logging
import os
from typing import Optional

from pydantic import EmailStr, TypeAdapter, ValidationError
from supabase import Client

from app.db import require_admin_client
from app.models.report import Authority, AuthorityRecord, AuthoritySource, Location

logger = logging.getLogger(__name__)

_AUTHORITY_COLUMNS = "id, name, email, phone, city, state, zip, is_default"

DEFAULT_CONTACT_NAME = "311 Public Works Intake"
DEFAULT_CONTACT_EMAIL = "311@example.gov"

_EMAIL_ADAPTER = TypeAdapter(EmailStr)


class AuthorityLookupError(Exception):
    """The authority directory could not be queried (distinct from 'no match')."""


def normalize_zip(zip_code: str) -> str:
    return zip_code.strip()[:5]


def normalize_place(value: str) -> str:
    """Trim and lowercase a city or state name."""
    return value.strip().lower()


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike() behaves as a case-insensitive equality."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Directory (Supabase authorities table)
# ---------------------------------------------------------------------------

class SupabaseAuthorityDirectory:
    """Read-only access to the authorities table."""

    def __init__(self, client: Optional[Client] = None):
        self.client = client if client is not None else require_admin_client()

    def _first(self, query, description: str) -> Optional[AuthorityRecord]:
        try:
            result = query.limit(1).execute()
        except Exception as e:
            raise AuthorityLookupError(f"Failed {description} authority lookup: {str(e)}") from e

        if not result.data:
            return None
        return AuthorityRecord(**result.data[0])

    def find_by_zip(self, zip_code: str) -> Optional[AuthorityRecord]:
        query = self.client.table("authorities").select(_AUTHORITY_COLUMNS).eq("zip", zip_code)
        return self._first(query, "zip")

    def find_by_city_state(self, city: str, state: str) -> Optional[AuthorityRecord]:
        query = (
            self.client.table("authorities")
            .select(_AUTHORITY_COLUMNS)
            .ilike("city", _escape_like(city))
            .ilike("state", _escape_like(state))
        )
        return self._first(query, "city")

    def find_default(self) -> Optional[AuthorityRecord]:
        query = self.client.table("authorities").select(_AUTHORITY_COLUMNS).eq("is_default", True)
        return self._first(query, "default")


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def static_default_authority() -> Authority:
    """Configured last-resort contact, used when the directory has no default row."""
    email = os.getenv("DEFAULT_CONTACT_EMAIL") or DEFAULT_CONTACT_EMAIL
    try:
        _EMAIL_ADAPTER.validate_python(email)
    except ValidationError:
        logger.warning(f"DEFAULT_CONTACT_EMAIL {email!r} is not a valid address; using {DEFAULT_CONTACT_EMAIL}")
        email = DEFAULT_CONTACT_EMAIL
    return Authority(
        name=os.getenv("DEFAULT_CONTACT_NAME") or DEFAULT_CONTACT_NAME,
        email=email,
        phone=None,
        source=AuthoritySource.DEFAULT,
    )


class AuthorityResolver:
    """
    Resolve a Location to an Authority using the tiered lookup.

    The directory is anything exposing find_by_zip / find_by_city_state /
    find_default returning AuthorityRecord or None; tests pass in-memory fakes.
    """

    def __init__(self, directory):
        self.directory = directory

    def resolve(self, location: Location) -> Authority:
        zip_code = normalize_zip(location.zip)
        if zip_code:
            record = self.directory.find_by_zip(zip_code)
            if record:
                logger.info(f"Authority resolved by zip {zip_code!r}: {record.email}")
                return Authority.from_record(record, AuthoritySource.EXACT)

        city = normalize_place(location.city)
        state = normalize_place(location.state)
        record = self.directory.find_by_city_state(city, state)
        if record:
            logger.info(f"Authority resolved by city/state {city!r}, {state!r}: {record.email}")
            return Authority.from_record(record, AuthoritySource.CITY_FALLBACK)

        record = self.directory.find_default()
        if record:
            logger.info(f"No zip/city authority match; using default record {record.email}")
            return Authority.from_record(record, AuthoritySource.DEFAULT)

        fallback = static_default_authority()
        logger.warning(
            f"No authority rows matched and no default row exists; "
            f"using configured contact {fallback.email}"
        )
        return fallback
