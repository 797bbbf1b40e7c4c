"""Upload request lifecycle: creation, listing, revocation, vendor status and completion.

Vendor-facing calls carry no session. Each one re-derives authorization from
``(request_id, token)`` through :func:`authorize_portal_access`, which is also
used by the signed URL broker and the finalize handshake.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode
from uuid import UUID, uuid4

from vendor_portal.config import (
    get_default_doc_types,
    get_default_expires_in_hours,
    get_default_max_files,
    get_default_max_total_bytes,
    get_portal_base_url,
)
from vendor_portal.errors import AccessDenied, NotFound, UploadValidationError
from vendor_portal.logging import get_logger
from vendor_portal.models import (
    AuditEvent,
    RequestContext,
    UploadFileRecord,
    UploadFileStatus,
    UploadRequestRecord,
    UploadRequestStatus,
    effective_request_status,
    is_terminal,
)
from vendor_portal.repositories.upload_store import UploadStore
from vendor_portal.services.notifications import UploadRequestInvitation, UploadRequestNotifier
from vendor_portal.services.upload_quota import RemainingQuota, remaining_quota, summarize_usage
from vendor_portal.services.upload_tokens import issue_upload_token, verify_upload_token
from vendor_portal.services.work_orders import WorkOrderDirectory, WorkOrderRecord

logger = get_logger(__name__)

ENTITY_UPLOAD_REQUEST = "upload_request"
ENTITY_UPLOAD_FILE = "upload_file"
# Compared against when the request id is unknown, so both failure paths hash once.
_UNKNOWN_REQUEST_TOKEN_HASH = "0" * 64


@dataclass(frozen=True)
class CreateUploadRequestParams:
    work_order_id: str
    vendor_id: str
    request_email: str
    allowed_doc_types: list[str] | None = None
    expires_in_hours: int | None = None
    max_files: int | None = None
    max_total_bytes: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class CreatedUploadRequest:
    request_id: UUID
    portal_url: str
    expires_at: datetime


@dataclass(frozen=True)
class UploadRequestSummary:
    id: UUID
    vendor_id: str
    request_email: str
    status: UploadRequestStatus
    expires_at: datetime
    max_files: int
    max_total_bytes: int
    file_count: int
    pending_file_count: int
    created_at: datetime
    created_by: str | None


@dataclass(frozen=True)
class PortalStatus:
    request_id: UUID
    status: UploadRequestStatus
    allowed_doc_types: tuple[str, ...]
    max_files: int
    max_total_bytes: int
    expires_at: datetime
    message: str | None
    uploaded_files: list[UploadFileRecord]
    remaining: RemainingQuota
    work_order_title: str | None = None
    work_order_number: str | None = None


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_uuid(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def build_portal_url(request_id: UUID, raw_token: str) -> str:
    return f"{get_portal_base_url()}/vendor-upload/work-order/{request_id}?{urlencode({'t': raw_token})}"


def record_audit(store: UploadStore, event: AuditEvent) -> None:
    """Write an audit row; a failed audit write never fails the vendor call."""
    try:
        store.record_audit_event(event)
    except Exception:
        logger.exception(
            "audit.write_failed",
            event_type=event.event_type,
            entity_id=event.entity_id,
        )


def _deny(
    store: UploadStore,
    *,
    action: str,
    request_id: str,
    reason: str,
    source_ip: str | None,
    record: UploadRequestRecord | None = None,
) -> AccessDenied:
    # source_ip is what a throttling layer keys repeated failures on.
    logger.warning(
        "upload_portal.access_denied",
        action=action,
        request_id=str(request_id)[:64],
        reason=reason,
        source_ip=source_ip,
    )
    if record is not None:
        record_audit(
            store,
            AuditEvent(
                org_id=record.org_id,
                event_type="upload_request.access_denied",
                entity_type=ENTITY_UPLOAD_REQUEST,
                entity_id=str(record.id),
                metadata={"action": action, "reason": reason},
                ip_address=source_ip,
            ),
        )
    return AccessDenied(reason)


def authorize_portal_access(
    store: UploadStore,
    *,
    request_id: str | UUID,
    token: str | None,
    source_ip: str | None,
    now: datetime,
    action: str,
    allowed_statuses: Collection[UploadRequestStatus] = (UploadRequestStatus.ACTIVE,),
) -> UploadRequestRecord:
    """Resolve the request a vendor token grants access to, or raise AccessDenied.

    Unknown ids, wrong tokens and non-allowed effective statuses all raise the
    same exception type; only the internal ``reason`` differs.
    """
    parsed_id = parse_uuid(request_id)
    record = store.get_request(parsed_id) if parsed_id else None
    token_ok = verify_upload_token(token, record.token_hash if record else _UNKNOWN_REQUEST_TOKEN_HASH)

    if record is None:
        raise _deny(store, action=action, request_id=str(request_id), reason="unknown upload request", source_ip=source_ip)
    if not token_ok:
        raise _deny(store, action=action, request_id=str(request_id), reason="token mismatch", source_ip=source_ip, record=record)

    status = effective_request_status(record, now)
    if status not in allowed_statuses:
        raise _deny(
            store,
            action=action,
            request_id=str(request_id),
            reason=f"upload request is {status.value}",
            source_ip=source_ip,
            record=record,
        )
    return record


def require_work_order(work_orders: WorkOrderDirectory, *, org_id: str, work_order_id: str) -> WorkOrderRecord:
    work_order = work_orders.get(org_id=org_id, work_order_id=work_order_id)
    if work_order is None:
        raise NotFound("Work order", work_order_id)
    return work_order


def _normalize_doc_types(doc_types: list[str] | None) -> tuple[str, ...]:
    if doc_types is None:
        return tuple(get_default_doc_types())
    normalized: list[str] = []
    for doc_type in doc_types:
        value = doc_type.strip()
        if value and value not in normalized:
            normalized.append(value)
    if not normalized:
        raise UploadValidationError("allowedDocTypes must contain at least one document type.")
    return tuple(normalized)


def create_upload_request(
    *,
    store: UploadStore,
    notifier: UploadRequestNotifier,
    work_orders: WorkOrderDirectory,
    ctx: RequestContext,
    params: CreateUploadRequestParams,
    now: datetime | None = None,
) -> CreatedUploadRequest:
    now = now or utcnow()
    require_work_order(work_orders, org_id=ctx.org_id, work_order_id=params.work_order_id)
    expires_in_hours = params.expires_in_hours if params.expires_in_hours is not None else get_default_expires_in_hours()
    token = issue_upload_token()

    record = store.insert_request(
        UploadRequestRecord(
            id=uuid4(),
            org_id=ctx.org_id,
            work_order_id=params.work_order_id,
            vendor_id=params.vendor_id,
            request_email=params.request_email,
            token_hash=token.token_hash,
            expires_at=now + timedelta(hours=expires_in_hours),
            status=UploadRequestStatus.ACTIVE,
            allowed_doc_types=_normalize_doc_types(params.allowed_doc_types),
            max_files=params.max_files if params.max_files is not None else get_default_max_files(),
            max_total_bytes=(
                params.max_total_bytes if params.max_total_bytes is not None else get_default_max_total_bytes()
            ),
            message=params.message,
            created_by=ctx.actor_id,
            created_at=now,
        )
    )
    portal_url = build_portal_url(record.id, token.secret)

    record_audit(
        store,
        AuditEvent(
            org_id=ctx.org_id,
            event_type="upload_request.created",
            entity_type=ENTITY_UPLOAD_REQUEST,
            entity_id=str(record.id),
            actor_id=ctx.actor_id,
            metadata={"work_order_id": record.work_order_id, "vendor_id": record.vendor_id},
        ),
    )
    logger.info(
        "upload_request.created",
        request_id=str(record.id),
        org_id=record.org_id,
        work_order_id=record.work_order_id,
        vendor_id=record.vendor_id,
        expires_at=record.expires_at.isoformat(),
    )

    invitation = UploadRequestInvitation(
        request_id=str(record.id),
        request_email=record.request_email,
        portal_url=portal_url,
        expires_at=record.expires_at,
        allowed_doc_types=record.allowed_doc_types,
        message=record.message,
    )
    try:
        notifier.send_upload_request(invitation)
    except Exception as exc:
        # The link is valid whether or not the email arrived.
        logger.warning(
            "upload_request.notification_failed",
            request_id=str(record.id),
            error=str(exc),
            error_type=type(exc).__name__,
        )

    return CreatedUploadRequest(request_id=record.id, portal_url=portal_url, expires_at=record.expires_at)


def list_upload_requests(
    *,
    store: UploadStore,
    work_orders: WorkOrderDirectory,
    org_id: str,
    work_order_id: str,
    now: datetime | None = None,
) -> list[UploadRequestSummary]:
    now = now or utcnow()
    require_work_order(work_orders, org_id=org_id, work_order_id=work_order_id)
    return [
        UploadRequestSummary(
            id=summary.request.id,
            vendor_id=summary.request.vendor_id,
            request_email=summary.request.request_email,
            status=effective_request_status(summary.request, now),
            expires_at=summary.request.expires_at,
            max_files=summary.request.max_files,
            max_total_bytes=summary.request.max_total_bytes,
            file_count=summary.file_count,
            pending_file_count=summary.pending_file_count,
            created_at=summary.request.created_at,
            created_by=summary.request.created_by,
        )
        for summary in store.list_request_summaries(org_id=org_id, work_order_id=work_order_id)
    ]


def revoke_upload_request(
    *,
    store: UploadStore,
    org_id: str,
    request_id: str | UUID,
    actor_id: str | None,
    now: datetime | None = None,
) -> None:
    now = now or utcnow()
    parsed_id = parse_uuid(request_id)
    record = store.get_request(parsed_id) if parsed_id else None
    if record is None or record.org_id != org_id:
        raise NotFound("Upload request", str(request_id))

    status = effective_request_status(record, now)
    if is_terminal(status):
        logger.info("upload_request.revoke_noop", request_id=str(record.id), status=status.value)
        return

    if not store.revoke_request(org_id=org_id, request_id=record.id, actor_id=actor_id, now=now):
        # Completed or expired between the read and the update; still terminal.
        logger.info("upload_request.revoke_noop", request_id=str(record.id), status="changed")
        return

    record_audit(
        store,
        AuditEvent(
            org_id=org_id,
            event_type="upload_request.revoked",
            entity_type=ENTITY_UPLOAD_REQUEST,
            entity_id=str(record.id),
            actor_id=actor_id,
        ),
    )
    logger.info("upload_request.revoked", request_id=str(record.id), actor_id=actor_id)


def get_portal_status(
    *,
    store: UploadStore,
    request_id: str | UUID,
    token: str | None,
    source_ip: str | None,
    work_orders: WorkOrderDirectory | None = None,
    now: datetime | None = None,
) -> PortalStatus:
    now = now or utcnow()
    record = authorize_portal_access(
        store,
        request_id=request_id,
        token=token,
        source_ip=source_ip,
        now=now,
        action="status",
        allowed_statuses=(UploadRequestStatus.ACTIVE, UploadRequestStatus.COMPLETED),
    )
    files = store.list_files(record.id)
    usage = summarize_usage(files)
    work_order = work_orders.get(org_id=record.org_id, work_order_id=record.work_order_id) if work_orders else None

    record_audit(
        store,
        AuditEvent(
            org_id=record.org_id,
            event_type="upload_request.opened",
            entity_type=ENTITY_UPLOAD_REQUEST,
            entity_id=str(record.id),
            ip_address=source_ip,
        ),
    )
    logger.info("upload_request.opened", request_id=str(record.id), source_ip=source_ip)

    return PortalStatus(
        request_id=record.id,
        status=effective_request_status(record, now),
        allowed_doc_types=record.allowed_doc_types,
        max_files=record.max_files,
        max_total_bytes=record.max_total_bytes,
        expires_at=record.expires_at,
        message=record.message,
        uploaded_files=files,
        remaining=remaining_quota(record, usage),
        work_order_title=work_order.title if work_order else None,
        work_order_number=work_order.display_number if work_order else None,
    )


def complete_upload_request(
    *,
    store: UploadStore,
    request_id: str | UUID,
    token: str | None,
    source_ip: str | None,
    now: datetime | None = None,
) -> None:
    now = now or utcnow()
    record = authorize_portal_access(
        store,
        request_id=request_id,
        token=token,
        source_ip=source_ip,
        now=now,
        action="complete",
    )

    files = store.list_files(record.id)
    if not any(upload_file.status is UploadFileStatus.FINALIZED for upload_file in files):
        raise _deny(
            store,
            action="complete",
            request_id=str(record.id),
            reason="no finalized files",
            source_ip=source_ip,
            record=record,
        )

    if not store.complete_request(request_id=record.id, now=now):
        raise _deny(
            store,
            action="complete",
            request_id=str(record.id),
            reason="upload request left active state before completion",
            source_ip=source_ip,
            record=record,
        )

    record_audit(
        store,
        AuditEvent(
            org_id=record.org_id,
            event_type="upload_request.completed",
            entity_type=ENTITY_UPLOAD_REQUEST,
            entity_id=str(record.id),
            ip_address=source_ip,
            metadata={"finalized_files": sum(1 for f in files if f.status is UploadFileStatus.FINALIZED)},
        ),
    )
    logger.info("upload_request.completed", request_id=str(record.id), source_ip=source_ip)
