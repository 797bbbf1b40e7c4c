from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from vendor_portal.config import get_allowed_mime_types, get_max_file_bytes
from vendor_portal.errors import UploadValidationError
from vendor_portal.models import UploadFileRecord, UploadRequestRecord, counts_against_quota


@dataclass(frozen=True)
class FilePolicy:
    allowed_mime_types: frozenset[str]
    max_file_bytes: int


@dataclass(frozen=True)
class QuotaUsage:
    file_count: int
    total_bytes: int


@dataclass(frozen=True)
class RemainingQuota:
    files: int
    bytes: int


def get_file_policy() -> FilePolicy:
    return FilePolicy(
        allowed_mime_types=frozenset(mime.lower() for mime in get_allowed_mime_types()),
        max_file_bytes=get_max_file_bytes(),
    )


def summarize_usage(files: Iterable[UploadFileRecord]) -> QuotaUsage:
    """Sum reserved usage; pending files count from the moment they exist."""
    file_count = 0
    total_bytes = 0
    for upload_file in files:
        if not counts_against_quota(upload_file.status):
            continue
        file_count += 1
        total_bytes += upload_file.declared_size_bytes
    return QuotaUsage(file_count=file_count, total_bytes=total_bytes)


def remaining_quota(request: UploadRequestRecord, usage: QuotaUsage) -> RemainingQuota:
    return RemainingQuota(
        files=max(request.max_files - usage.file_count, 0),
        bytes=max(request.max_total_bytes - usage.total_bytes, 0),
    )


def check_doc_type(request: UploadRequestRecord, doc_type: str) -> None:
    if doc_type not in request.allowed_doc_types:
        raise UploadValidationError(
            f'Document type "{doc_type}" is not allowed.',
            details={"allowed_doc_types": list(request.allowed_doc_types)},
        )


def check_file_policy(*, mime_type: str, size_bytes: int, policy: FilePolicy) -> None:
    if mime_type.lower() not in policy.allowed_mime_types:
        raise UploadValidationError(
            f'File type "{mime_type}" is not allowed.',
            details={"allowed_mime_types": sorted(policy.allowed_mime_types)},
        )
    if size_bytes <= 0:
        raise UploadValidationError("File is empty.")
    if size_bytes > policy.max_file_bytes:
        max_mb = policy.max_file_bytes / 1024 / 1024
        raise UploadValidationError(
            f"File exceeds maximum size of {max_mb:g} MB.",
            details={"max_file_bytes": policy.max_file_bytes},
        )


def check_quota_admission(
    *,
    request: UploadRequestRecord,
    files: Iterable[UploadFileRecord],
    size_bytes: int,
) -> QuotaUsage:
    """Raise if one more file of ``size_bytes`` would overrun the request's quota.

    Must be called while the request row is locked so the usage read and the
    following insert form one unit.
    """
    usage = summarize_usage(files)
    if usage.file_count + 1 > request.max_files:
        raise UploadValidationError(
            f"Maximum number of files ({request.max_files}) reached.",
            details={"max_files": request.max_files},
        )
    if usage.total_bytes + size_bytes > request.max_total_bytes:
        raise UploadValidationError(
            "Total upload size limit exceeded.",
            details={
                "max_total_bytes": request.max_total_bytes,
                "remaining_bytes": max(request.max_total_bytes - usage.total_bytes, 0),
            },
        )
    return usage
