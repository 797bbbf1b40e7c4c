from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class SignedUpload:
    url: str
    method: str
    headers: dict[str, str]
    expires_in: int


class UploadStorage(Protocol):
    """Object storage that issues and honors short-lived write URLs."""

    def create_signed_upload_url(self, *, storage_path: str, content_type: str, expires_in: int) -> SignedUpload:
        ...

    def stat_object_size(self, *, storage_path: str) -> int | None:
        """Return the stored object's size in bytes, or ``None`` if absent."""
        ...
