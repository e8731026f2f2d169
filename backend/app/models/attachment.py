"""
Photo attachment model.

Uploaded photos are read into memory once at the HTTP boundary; the same
objects are then uploaded to storage and attached to the outbound email.
"""

from pydantic import BaseModel


class PhotoAttachment(BaseModel):
    """A single image, already read to raw bytes."""

    filename: str
    content: bytes
    content_type: str

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")
