from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from vendor_portal.config import get_signed_url_ttl_seconds
from vendor_portal.errors import StorageUnavailable
from vendor_portal.logging import get_logger
from vendor_portal.models import AuditEvent, UploadFileRecord, UploadFileStatus, UploadRequestRecord
from vendor_portal.repositories.upload_store import UploadStore
from vendor_portal.services.s3_storage import build_upload_storage_path
from vendor_portal.services.upload_quota import (
    FilePolicy,
    check_doc_type,
    check_file_policy,
    check_quota_admission,
    get_file_policy,
)
from vendor_portal.services.upload_requests import ENTITY_UPLOAD_FILE, authorize_portal_access, record_audit, utcnow
from vendor_portal.services.upload_storage import UploadStorage

logger = get_logger(__name__)


@dataclass(frozen=True)
class FileMeta:
    file_name: str
    mime_type: str
    size_bytes: int
    doc_type: str


@dataclass(frozen=True)
class IssuedUploadUrl:
    signed_url: str
    upload_file_id: UUID
    storage_path: str
    method: str
    headers: dict[str, str]
    expires_in: int


def create_upload_url(
    *,
    store: UploadStore,
    storage: UploadStorage,
    request_id: str | UUID,
    token: str | None,
    file_meta: FileMeta,
    source_ip: str | None,
    policy: FilePolicy | None = None,
    now: datetime | None = None,
) -> IssuedUploadUrl:
    """Reserve quota for one file and hand back a short-lived write URL for it.

    Checks run in a fixed order and the first failure wins: token, request
    state, document type, global file policy, then quota. The quota check and
    the ``pending`` row insert happen in a single locked transaction.
    """
    now = now or utcnow()
    policy = policy or get_file_policy()
    request = authorize_portal_access(
        store,
        request_id=request_id,
        token=token,
        source_ip=source_ip,
        now=now,
        action="create_upload_url",
    )
    check_doc_type(request, file_meta.doc_type)
    check_file_policy(mime_type=file_meta.mime_type, size_bytes=file_meta.size_bytes, policy=policy)

    file_id = uuid4()
    storage_path = build_upload_storage_path(
        org_id=request.org_id,
        work_order_id=request.work_order_id,
        vendor_id=request.vendor_id,
        request_id=request.id,
        file_id=file_id,
        file_name=file_meta.file_name,
    )

    def admit(locked_request: UploadRequestRecord, files: list[UploadFileRecord]) -> None:
        check_quota_admission(request=locked_request, files=files, size_bytes=file_meta.size_bytes)

    upload_file = store.reserve_file(
        upload_file=UploadFileRecord(
            id=file_id,
            upload_request_id=request.id,
            file_name=file_meta.file_name,
            mime_type=file_meta.mime_type,
            declared_size_bytes=file_meta.size_bytes,
            doc_type=file_meta.doc_type,
            storage_path=storage_path,
            status=UploadFileStatus.PENDING,
            created_at=now,
            uploader_ip=source_ip,
        ),
        now=now,
        admit=admit,
    )

    expires_in = get_signed_url_ttl_seconds()
    try:
        signed = storage.create_signed_upload_url(
            storage_path=storage_path,
            content_type=file_meta.mime_type,
            expires_in=expires_in,
        )
    except Exception as exc:
        # Release the reservation; nothing can be written without a URL.
        store.mark_file_error(upload_file.id)
        logger.error(
            "upload_file.signed_url_failed",
            request_id=str(request.id),
            upload_file_id=str(upload_file.id),
            error=str(exc),
        )
        if isinstance(exc, StorageUnavailable):
            raise
        raise StorageUnavailable("Failed to generate upload URL.", reason=str(exc)) from exc

    record_audit(
        store,
        AuditEvent(
            org_id=request.org_id,
            event_type="upload_file.reserved",
            entity_type=ENTITY_UPLOAD_FILE,
            entity_id=str(upload_file.id),
            metadata={
                "upload_request_id": str(request.id),
                "doc_type": file_meta.doc_type,
                "declared_size_bytes": file_meta.size_bytes,
            },
            ip_address=source_ip,
        ),
    )
    logger.info(
        "upload_file.reserved",
        request_id=str(request.id),
        upload_file_id=str(upload_file.id),
        doc_type=file_meta.doc_type,
        declared_size_bytes=file_meta.size_bytes,
        source_ip=source_ip,
    )

    return IssuedUploadUrl(
        signed_url=signed.url,
        upload_file_id=upload_file.id,
        storage_path=storage_path,
        method=signed.method,
        headers=signed.headers,
        expires_in=signed.expires_in,
    )
