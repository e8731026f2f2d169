#!/usr/bin/env python3
"""
Dev helper: submit a test civic issue report to the local FixLocal backend.

Builds the multipart form the mobile app sends (userId, issueType, location
JSON, notes, photos), optionally attaches real images (or generates a placeholder
PNG), and POST-s it to /api/report.

Usage
-----
# Preview the drafted email for a pothole in San Francisco (nothing is stored)
python scripts/submit_test_report.py --token "$TOKEN" --user-id "$USER_ID"

# Actually send it
python scripts/submit_test_report.py --token "$TOKEN" --user-id "$USER_ID" --mode send

# Attach real photos
python scripts/submit_test_report.py --token "$TOKEN" --user-id "$USER_ID" --photo a.jpg --photo b.jpg

# Target a different backend URL
python scripts/submit_test_report.py --url http://staging.example.com ...

Environment / .env
------------------
FIXLOCAL_TEST_TOKEN      Supabase access token for the reporter (or --token).
FIXLOCAL_TEST_USER_ID    Reporter's Supabase user id (or --user-id).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


ISSUE_TYPES = [
    "Pothole",
    "Streetlight Out",
    "Graffiti",
    "Illegal Dumping",
    "Road Sign Damage",
    "Other",
]

# Placeholder image; the backend does not decode photos
_SAMPLE_PNG = bytes.fromhex("89504e470d0a1a0a") + b"fixlocal-sample"


def _detect_content_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    return {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".heic": "image/heic",
        ".webp": "image/webp",
    }.get(ext, "application/octet-stream")


def _print_response(response) -> None:
    status = response.status_code
    symbol = "OK" if status in (200, 201) else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        body = response.json()
        print(json.dumps(body, indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    script_dir = Path(__file__).resolve().parent
    project_root = script_dir.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="submit_test_report.py",
        description="Submit a test civic issue report to the FixLocal backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/submit_test_report.py --token T --user-id U
              python scripts/submit_test_report.py --token T --user-id U --mode send
              python scripts/submit_test_report.py --token T --user-id U --issue-type Graffiti --photo wall.jpg
        """),
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--token", default=os.getenv("FIXLOCAL_TEST_TOKEN"), help="Bearer token")
    parser.add_argument("--user-id", default=os.getenv("FIXLOCAL_TEST_USER_ID"), help="Reporter user id")
    parser.add_argument(
        "--mode",
        default="preview",
        choices=["preview", "send"],
        help="preview drafts only; send stores and emails the report (default: preview)",
    )
    parser.add_argument("--issue-type", default="Pothole", choices=ISSUE_TYPES)
    parser.add_argument("--notes", default="Large pothole in the right lane, about a foot wide.")
    parser.add_argument("--latitude", type=float, default=37.7749)
    parser.add_argument("--longitude", type=float, default=-122.4194)
    parser.add_argument("--city", default="San Francisco")
    parser.add_argument("--state", default="CA")
    parser.add_argument("--zip", default="94103")
    parser.add_argument("--address", default="1 Market St, San Francisco, CA 94103")
    parser.add_argument(
        "--photo",
        action="append",
        default=[],
        metavar="PATH",
        help="Image to attach (repeatable). A placeholder PNG is used if omitted.",
    )

    args = parser.parse_args()

    if not args.token or not args.user_id:
        print(
            "ERROR: A token and user id are required.\n"
            "Set FIXLOCAL_TEST_TOKEN / FIXLOCAL_TEST_USER_ID or pass --token / --user-id.",
            file=sys.stderr,
        )
        return 1

    files = []
    for photo in args.photo:
        path = Path(photo)
        if not path.exists():
            print(f"ERROR: File not found: {path}", file=sys.stderr)
            return 1
        files.append(("photos", (path.name, path.read_bytes(), _detect_content_type(path.name))))
    if not files:
        files.append(("photos", ("sample.png", _SAMPLE_PNG, "image/png")))

    location = {
        "latitude": args.latitude,
        "longitude": args.longitude,
        "city": args.city,
        "state": args.state,
        "zip": args.zip,
        "formattedAddress": args.address,
    }
    form = {
        "userId": args.user_id,
        "issueType": args.issue_type,
        "location": json.dumps(location),
        "notes": args.notes,
        "mode": args.mode,
    }

    endpoint = f"{args.url.rstrip('/')}/api/report"

    print(f"Endpoint  : {endpoint}")
    print(f"Mode      : {args.mode}")
    print(f"Issue     : {args.issue_type}")
    print(f"Location  : {args.city}, {args.state} {args.zip}")
    print(f"Photos    : {len(files)}")

    try:
        response = httpx.post(
            endpoint,
            data=form,
            files=files,
            headers={"Authorization": f"Bearer {args.token}"},
            timeout=60,
        )
        _print_response(response)
        return 0 if response.status_code in (200, 201) else 1
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && source .venv/bin/activate && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1
    except Exception as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
