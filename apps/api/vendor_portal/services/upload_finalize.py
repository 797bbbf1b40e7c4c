from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from vendor_portal.config import get_verify_uploaded_objects
from vendor_portal.errors import AccessDenied, UploadConflict, UploadValidationError
from vendor_portal.logging import get_logger
from vendor_portal.models import AuditEvent, UploadFileRecord, UploadFileStatus
from vendor_portal.repositories.upload_store import UploadStore
from vendor_portal.services.documents import DocumentRecorder
from vendor_portal.services.upload_requests import (
    ENTITY_UPLOAD_FILE,
    authorize_portal_access,
    parse_uuid,
    record_audit,
    utcnow,
)
from vendor_portal.services.upload_storage import UploadStorage

logger = get_logger(__name__)


@dataclass(frozen=True)
class FinalizeMeta:
    sha256: str | None = None
    size_bytes: int | None = None


def _conflict(*, request_id: UUID, upload_file_id: str, reason: str, source_ip: str | None) -> UploadConflict:
    logger.warning(
        "upload_portal.finalize_conflict",
        request_id=str(request_id),
        upload_file_id=upload_file_id[:64],
        reason=reason,
        source_ip=source_ip,
    )
    return UploadConflict(reason)


def _reject_verification(
    store: UploadStore,
    upload_file: UploadFileRecord,
    *,
    message: str,
    observed_size: int | None,
) -> UploadValidationError:
    store.mark_file_error(upload_file.id)
    logger.warning(
        "upload_file.verification_failed",
        upload_file_id=str(upload_file.id),
        storage_path=upload_file.storage_path,
        declared_size_bytes=upload_file.declared_size_bytes,
        observed_size_bytes=observed_size,
        reason=message,
    )
    return UploadValidationError(message)


def _verify_stored_object(
    store: UploadStore,
    storage: UploadStorage,
    upload_file: UploadFileRecord,
    *,
    claimed_size: int | None,
) -> int | None:
    """Check the object landed and is no larger than what quota was reserved for.

    Returns the observed size. A failed check moves the file to ``error`` so
    its reservation is released.
    """
    if claimed_size is not None and claimed_size > upload_file.declared_size_bytes:
        raise _reject_verification(
            store,
            upload_file,
            message="Uploaded file is larger than declared.",
            observed_size=claimed_size,
        )
    if not get_verify_uploaded_objects():
        return claimed_size

    observed_size = storage.stat_object_size(storage_path=upload_file.storage_path)
    if observed_size is None:
        raise _reject_verification(
            store,
            upload_file,
            message="Uploaded file was not found in storage.",
            observed_size=None,
        )
    if observed_size > upload_file.declared_size_bytes:
        raise _reject_verification(
            store,
            upload_file,
            message="Uploaded file is larger than declared.",
            observed_size=observed_size,
        )
    return observed_size


def finalize_upload(
    *,
    store: UploadStore,
    storage: UploadStorage,
    recorder: DocumentRecorder,
    request_id: str | UUID,
    token: str | None,
    upload_file_id: str | UUID,
    meta: FinalizeMeta,
    source_ip: str | None,
    now: datetime | None = None,
) -> UploadFileRecord:
    """Promote a pending upload into the work order's document set.

    The ``pending -> finalized`` transition and the Document creation commit
    together; a retried call finds the file no longer pending and fails with
    UploadConflict instead of creating a second Document.
    """
    now = now or utcnow()
    request = authorize_portal_access(
        store,
        request_id=request_id,
        token=token,
        source_ip=source_ip,
        now=now,
        action="finalize",
    )

    parsed_file_id = parse_uuid(upload_file_id)
    upload_file = store.get_file(parsed_file_id) if parsed_file_id else None
    if upload_file is None:
        raise _conflict(
            request_id=request.id,
            upload_file_id=str(upload_file_id),
            reason="upload file not found",
            source_ip=source_ip,
        )
    if upload_file.upload_request_id != request.id:
        logger.warning(
            "upload_portal.access_denied",
            action="finalize",
            request_id=str(request.id),
            reason="upload file belongs to another request",
            source_ip=source_ip,
        )
        raise AccessDenied("upload file belongs to another request")

    match upload_file.status:
        case UploadFileStatus.PENDING:
            pass
        case UploadFileStatus.FINALIZED:
            raise _conflict(
                request_id=request.id,
                upload_file_id=str(upload_file.id),
                reason="upload file already finalized",
                source_ip=source_ip,
            )
        case UploadFileStatus.ERROR:
            raise _conflict(
                request_id=request.id,
                upload_file_id=str(upload_file.id),
                reason="upload file is in error state",
                source_ip=source_ip,
            )

    observed_size = _verify_stored_object(store, storage, upload_file, claimed_size=meta.size_bytes)

    finalized = store.finalize_file(
        request_id=request.id,
        file_id=upload_file.id,
        sha256=meta.sha256.lower() if meta.sha256 else None,
        size_bytes=observed_size,
        now=now,
        recorder=recorder,
    )

    record_audit(
        store,
        AuditEvent(
            org_id=request.org_id,
            event_type="upload_file.finalized",
            entity_type=ENTITY_UPLOAD_FILE,
            entity_id=str(finalized.id),
            metadata={
                "upload_request_id": str(request.id),
                "document_id": str(finalized.document_id) if finalized.document_id else None,
                "file_name": finalized.file_name,
            },
            ip_address=source_ip,
        ),
    )
    logger.info(
        "upload_file.finalized",
        request_id=str(request.id),
        upload_file_id=str(finalized.id),
        document_id=str(finalized.document_id) if finalized.document_id else None,
        size_bytes=finalized.size_bytes,
        source_ip=source_ip,
    )
    return finalized
