#!/usr/bin/env python3
"""
Dev helper: load authority contacts into the Supabase authorities table.

With no flags, upserts the built-in seed set (conflicts on ``email`` update
the existing row). With ``--name``/``--email``/``--city``/``--state`` it
inserts a single authority instead.

Usage
-----
# Upsert the built-in seed set
python scripts/seed_authorities.py

# Add one authority
python scripts/seed_authorities.py --name "Philadelphia Streets Department" \\
    --email streets@phila.gov --city Philadelphia --state PA --zip 19103

# Add the catch-all default contact
python scripts/seed_authorities.py --name "County 311" --email 311@county.gov \\
    --city Default --state US --default

Environment / .env
------------------
SUPABASE_URL            Supabase project URL (required).
SUPABASE_SERVICE_KEY    Service-role key (required; the table is not writable with the anon key).

Variables are read from the environment or a .env file in the project root
or backend/.
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, EmailStr, Field, ValidationError
from supabase import create_client


class AuthoritySeed(BaseModel):
    """One authorities row to write."""
    name: str = Field(min_length=2)
    email: EmailStr
    phone: Optional[str] = None
    city: str = Field(min_length=2)
    state: str = Field(min_length=2)
    zip: Optional[str] = Field(default=None, min_length=3, max_length=12)
    is_default: bool = False


SEED_RECORDS: List[AuthoritySeed] = [
    AuthoritySeed(
        name="San Francisco Public Works",
        email="pw@sfgov.org",
        phone="415-554-6920",
        city="San Francisco",
        state="CA",
        zip="94103",
    ),
    AuthoritySeed(
        name="Austin Transportation and Public Works",
        email="transportation@austintexas.gov",
        phone="512-974-2000",
        city="Austin",
        state="TX",
        zip="78701",
    ),
    AuthoritySeed(
        name="311 Public Works Intake",
        email="311@example.gov",
        phone="311",
        city="Default",
        state="US",
        zip=None,
        is_default=True,
    ),
]


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------

def _service_client():
    url = os.getenv("SUPABASE_URL")
    service_key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not service_key:
        raise RuntimeError("Missing Supabase credentials in environment (SUPABASE_URL, SUPABASE_SERVICE_KEY).")
    return create_client(url, service_key)


def seed(client, records: List[AuthoritySeed]) -> int:
    rows = [record.model_dump() for record in records]
    client.table("authorities").upsert(rows, on_conflict="email").execute()
    return len(rows)


def add_authority(client, record: AuthoritySeed) -> dict:
    result = client.table("authorities").insert(record.model_dump()).execute()
    if not result.data:
        raise RuntimeError("Insert failed: no row returned.")
    return result.data[0]


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="seed_authorities.py",
        description="Seed or add authority contacts in Supabase.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/seed_authorities.py
              python scripts/seed_authorities.py --name "Austin 311" --email 311@austintexas.gov --city Austin --state TX
        """),
    )
    parser.add_argument("--name", help="Authority display name")
    parser.add_argument("--email", help="Contact email address")
    parser.add_argument("--city", help="City the authority serves")
    parser.add_argument("--state", help="State the authority serves")
    parser.add_argument("--zip", default=None, help="ZIP code (optional)")
    parser.add_argument("--phone", default=None, help="Contact phone (optional)")
    parser.add_argument(
        "--default",
        dest="is_default",
        action="store_true",
        help="Mark the authority as the catch-all default",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    args = _parse_args(argv)
    single = any([args.name, args.email, args.city, args.state])

    record = None
    if single:
        try:
            record = AuthoritySeed(
                name=args.name or "",
                email=args.email or "",
                phone=args.phone,
                city=args.city or "",
                state=args.state or "",
                zip=args.zip,
                is_default=args.is_default,
            )
        except ValidationError as e:
            print(f"ERROR: Invalid authority:\n{e}", file=sys.stderr)
            return 1

    try:
        client = _service_client()
        if record is not None:
            row = add_authority(client, record)
            print("Authority added:")
            print(json.dumps(row, indent=2, default=str))
        else:
            count = seed(client, SEED_RECORDS)
            print(f"Seeded {count} authority records.")
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
