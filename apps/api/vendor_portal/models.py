from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class UploadRequestStatus(StrEnum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"
    COMPLETED = "completed"


class UploadFileStatus(StrEnum):
    PENDING = "pending"
    FINALIZED = "finalized"
    ERROR = "error"


@dataclass(frozen=True)
class UploadRequestRecord:
    id: UUID
    org_id: str
    work_order_id: str
    vendor_id: str
    request_email: str
    token_hash: str
    expires_at: datetime
    status: UploadRequestStatus
    allowed_doc_types: tuple[str, ...]
    max_files: int
    max_total_bytes: int
    message: str | None
    created_by: str | None
    created_at: datetime
    revoked_at: datetime | None = None
    revoked_by: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict) -> UploadRequestRecord:
        return cls(
            id=row["id"],
            org_id=str(row["org_id"]),
            work_order_id=str(row["work_order_id"]),
            vendor_id=str(row["vendor_id"]),
            request_email=row["request_email"],
            token_hash=row["token_hash"],
            expires_at=row["expires_at"],
            status=UploadRequestStatus(row["status"]),
            allowed_doc_types=tuple(row["allowed_doc_types"] or ()),
            max_files=int(row["max_files"]),
            max_total_bytes=int(row["max_total_bytes"]),
            message=row.get("message"),
            created_by=row.get("created_by"),
            created_at=row["created_at"],
            revoked_at=row.get("revoked_at"),
            revoked_by=row.get("revoked_by"),
            completed_at=row.get("completed_at"),
        )


@dataclass(frozen=True)
class UploadFileRecord:
    id: UUID
    upload_request_id: UUID
    file_name: str
    mime_type: str
    declared_size_bytes: int
    doc_type: str
    storage_path: str
    status: UploadFileStatus
    created_at: datetime
    sha256: str | None = None
    size_bytes: int | None = None
    uploaded_at: datetime | None = None
    document_id: UUID | None = None
    uploader_ip: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> UploadFileRecord:
        return cls(
            id=row["id"],
            upload_request_id=row["upload_request_id"],
            file_name=row["file_name"],
            mime_type=row["mime_type"],
            declared_size_bytes=int(row["declared_size_bytes"]),
            doc_type=row["doc_type"],
            storage_path=row["storage_path"],
            status=UploadFileStatus(row["status"]),
            created_at=row["created_at"],
            sha256=row.get("sha256"),
            size_bytes=row.get("size_bytes"),
            uploaded_at=row.get("uploaded_at"),
            document_id=row.get("document_id"),
            uploader_ip=row.get("uploader_ip"),
        )


@dataclass(frozen=True)
class UploadRequestSummaryRecord:
    request: UploadRequestRecord
    file_count: int
    pending_file_count: int


@dataclass(frozen=True)
class RequestContext:
    """Authenticated staff member acting inside one organization."""

    org_id: str
    actor_id: str


@dataclass(frozen=True)
class AuditEvent:
    org_id: str | None
    event_type: str
    entity_type: str
    entity_id: str
    actor_id: str | None = None
    metadata: dict = field(default_factory=dict)
    ip_address: str | None = None


def effective_request_status(record: UploadRequestRecord, now: datetime) -> UploadRequestStatus:
    """Return the status every access path must act on.

    Expiry is evaluated lazily: a request past ``expires_at`` is expired no
    matter what the stored status says.
    """
    if now > record.expires_at:
        return UploadRequestStatus.EXPIRED
    return record.status


def is_terminal(status: UploadRequestStatus) -> bool:
    match status:
        case UploadRequestStatus.ACTIVE:
            return False
        case UploadRequestStatus.REVOKED | UploadRequestStatus.EXPIRED | UploadRequestStatus.COMPLETED:
            return True
    raise ValueError(f"unknown upload request status: {status!r}")


def counts_against_quota(status: UploadFileStatus) -> bool:
    match status:
        case UploadFileStatus.PENDING | UploadFileStatus.FINALIZED:
            return True
        case UploadFileStatus.ERROR:
            return False
    raise ValueError(f"unknown upload file status: {status!r}")
