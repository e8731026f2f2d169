"""
Supabase Storage service for report photos.
Handles upload and public URL generation.
"""

import asyncio
import os
import re
import time
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

from fastapi.concurrency import run_in_threadpool
from supabase import Client

from app.db import require_admin_client
from app.models.attachment import PhotoAttachment

DEFAULT_BUCKET = "report-photos"

_EXTENSIONS_BY_MIME = {
    "image/png": ".png",
    "image/heic": ".heic",
}


class PhotoUploadError(Exception):
    """A photo could not be written to storage."""


def get_bucket_name() -> str:
    return os.getenv("SUPABASE_STORAGE_BUCKET") or DEFAULT_BUCKET


def _sanitize_name(name: str) -> str:
    return re.sub(r'[^\w\-.]', '_', name)


def _extension_from_mime(content_type: str) -> str:
    return _EXTENSIONS_BY_MIME.get(content_type.lower(), ".jpg")


def build_photo_path(
    user_id: str,
    report_id: str,
    index: int,
    filename: Optional[str],
    content_type: str,
    timestamp_ms: Optional[int] = None,
) -> str:
    """
    Build the object path for one report photo.

    Path: {user_id}/{report_id}/{timestamp_ms}-{index}-{sanitized_base}{ext}

    The user/report prefix keeps reports apart; timestamp + index keep photos
    with the same original filename apart within a report. The extension
    comes from the filename, or from the MIME type when the filename has none.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    base, ext = os.path.splitext(os.path.basename(filename or ""))
    ext = ext or _extension_from_mime(content_type)
    safe_base = _sanitize_name(base) or "photo"
    return f"{user_id}/{report_id}/{timestamp_ms}-{index}-{safe_base}{ext}"


def _rewrite_public_url_host(public_url: str) -> str:
    """
    Replace the host in a storage URL with the browser-accessible Supabase URL.

    When the backend runs inside Docker it talks to Supabase through an
    internal URL like ``http://host.docker.internal:54321``, and Supabase
    embeds that host in the public URLs it builds. Those URLs end up in the
    report row and in the mobile app, so they must use the public host.

    If ``SUPABASE_PUBLIC_URL`` is not set the URL is returned unchanged.
    """
    public_base = os.getenv("SUPABASE_PUBLIC_URL", "").strip()
    if not public_base:
        return public_url

    parsed_url = urlparse(public_url)
    parsed_base = urlparse(public_base)

    return urlunparse((
        parsed_base.scheme,
        parsed_base.netloc,
        parsed_url.path,
        parsed_url.params,
        parsed_url.query,
        parsed_url.fragment,
    ))


class SupabasePhotoStore:
    """Writes report photos to the public photo bucket."""

    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        self.client = client if client is not None else require_admin_client()
        self.bucket = bucket or get_bucket_name()

    def upload(self, content: bytes, content_type: str, destination_path: str) -> str:
        """
        Upload one object and return its public URL.

        upsert is off: paths are unique per photo, so an existing object means
        a collision that should fail loudly rather than overwrite.

        Raises:
            PhotoUploadError: If the upload fails
        """
        try:
            self.client.storage.from_(self.bucket).upload(
                destination_path,
                content,
                {
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "false",
                },
            )
        except Exception as e:
            raise PhotoUploadError(f"Failed to upload photo: {str(e)}") from e

        public_url = self.client.storage.from_(self.bucket).get_public_url(destination_path)
        # storage3 appends an empty query marker when no transform options are given
        return _rewrite_public_url_host(public_url.rstrip("?"))


async def upload_report_photos(
    store,
    photos: List[PhotoAttachment],
    user_id: str,
    report_id: str,
) -> List[str]:
    """
    Upload all photos of one report concurrently.

    Returns the public URLs in the original attachment order, whatever order
    the uploads finish in. The first failure propagates.
    """
    timestamp_ms = int(time.time() * 1000)
    uploads = [
        run_in_threadpool(
            store.upload,
            photo.content,
            photo.content_type,
            build_photo_path(user_id, report_id, index, photo.filename, photo.content_type, timestamp_ms),
        )
        for index, photo in enumerate(photos)
    ]
    return list(await asyncio.gather(*uploads))
