from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from psycopg.types.json import Json

from vendor_portal.db import get_db_connection
from vendor_portal.errors import AccessDenied, PersistenceError, UploadConflict, UploadPortalError
from vendor_portal.models import (
    AuditEvent,
    UploadFileRecord,
    UploadFileStatus,
    UploadRequestRecord,
    UploadRequestStatus,
    UploadRequestSummaryRecord,
    effective_request_status,
)
from vendor_portal.services.documents import DocumentRecorder

QuotaAdmission = Callable[[UploadRequestRecord, list[UploadFileRecord]], None]

_REQUEST_COLUMNS = """
    r.id,
    r.org_id,
    r.work_order_id,
    r.vendor_id,
    r.request_email,
    r.token_hash,
    r.expires_at,
    r.status::text AS status,
    r.allowed_doc_types,
    r.max_files,
    r.max_total_bytes,
    r.message,
    r.created_by,
    r.created_at,
    r.revoked_at,
    r.revoked_by,
    r.completed_at
"""

_FILE_COLUMNS = """
    f.id,
    f.upload_request_id,
    f.file_name,
    f.mime_type,
    f.declared_size_bytes,
    f.doc_type,
    f.storage_path,
    f.status::text AS status,
    f.sha256,
    f.size_bytes,
    f.created_at,
    f.uploaded_at,
    f.document_id,
    f.uploader_ip
"""


class UploadStore(Protocol):
    def insert_request(self, record: UploadRequestRecord) -> UploadRequestRecord:
        ...

    def get_request(self, request_id: UUID) -> UploadRequestRecord | None:
        ...

    def list_request_summaries(self, *, org_id: str, work_order_id: str) -> list[UploadRequestSummaryRecord]:
        ...

    def list_files(self, request_id: UUID) -> list[UploadFileRecord]:
        ...

    def get_file(self, file_id: UUID) -> UploadFileRecord | None:
        ...

    def revoke_request(self, *, org_id: str, request_id: UUID, actor_id: str | None, now: datetime) -> bool:
        ...

    def complete_request(self, *, request_id: UUID, now: datetime) -> bool:
        ...

    def reserve_file(
        self,
        *,
        upload_file: UploadFileRecord,
        now: datetime,
        admit: QuotaAdmission,
    ) -> UploadFileRecord:
        ...

    def mark_file_error(self, file_id: UUID) -> bool:
        ...

    def finalize_file(
        self,
        *,
        request_id: UUID,
        file_id: UUID,
        sha256: str | None,
        size_bytes: int | None,
        now: datetime,
        recorder: DocumentRecorder,
    ) -> UploadFileRecord:
        ...

    def record_audit_event(self, event: AuditEvent) -> None:
        ...


def _lock_active_request(cur, *, request_id: UUID, now: datetime) -> UploadRequestRecord:
    """Lock the request row for this transaction and require it to be active."""
    cur.execute(
        f"""
        SELECT {_REQUEST_COLUMNS}
        FROM upload_requests r
        WHERE r.id = %s
        FOR UPDATE
        """,
        (str(request_id),),
    )
    row = cur.fetchone()
    if not row:
        raise AccessDenied("upload request vanished")
    request = UploadRequestRecord.from_row(row)
    status = effective_request_status(request, now)
    if status is not UploadRequestStatus.ACTIVE:
        raise AccessDenied(f"upload request is {status.value}")
    return request


class PostgresUploadStore:
    """UploadStore over the ``upload_requests`` / ``upload_files`` tables."""

    def insert_request(self, record: UploadRequestRecord) -> UploadRequestRecord:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO upload_requests (
                        id,
                        org_id,
                        work_order_id,
                        vendor_id,
                        request_email,
                        token_hash,
                        expires_at,
                        status,
                        allowed_doc_types,
                        max_files,
                        max_total_bytes,
                        message,
                        created_by,
                        created_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, 'active', %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        str(record.id),
                        record.org_id,
                        record.work_order_id,
                        record.vendor_id,
                        record.request_email,
                        record.token_hash,
                        record.expires_at,
                        list(record.allowed_doc_types),
                        record.max_files,
                        record.max_total_bytes,
                        record.message,
                        record.created_by,
                        record.created_at,
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        if not row:
            raise PersistenceError("Failed to create upload request.")
        return record

    def get_request(self, request_id: UUID) -> UploadRequestRecord | None:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_REQUEST_COLUMNS} FROM upload_requests r WHERE r.id = %s",
                    (str(request_id),),
                )
                row = cur.fetchone()
        return UploadRequestRecord.from_row(row) if row else None

    def list_request_summaries(self, *, org_id: str, work_order_id: str) -> list[UploadRequestSummaryRecord]:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT
                        {_REQUEST_COLUMNS},
                        COUNT(f.id) FILTER (WHERE f.status = 'finalized') AS file_count,
                        COUNT(f.id) FILTER (WHERE f.status = 'pending') AS pending_file_count
                    FROM upload_requests r
                    LEFT JOIN upload_files f ON f.upload_request_id = r.id
                    WHERE r.org_id = %s
                      AND r.work_order_id = %s
                    GROUP BY r.id
                    ORDER BY r.created_at DESC
                    """,
                    (org_id, work_order_id),
                )
                rows = cur.fetchall()

        return [
            UploadRequestSummaryRecord(
                request=UploadRequestRecord.from_row(row),
                file_count=int(row["file_count"] or 0),
                pending_file_count=int(row["pending_file_count"] or 0),
            )
            for row in rows
        ]

    def list_files(self, request_id: UUID) -> list[UploadFileRecord]:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM upload_files f
                    WHERE f.upload_request_id = %s
                    ORDER BY f.created_at ASC
                    """,
                    (str(request_id),),
                )
                rows = cur.fetchall()
        return [UploadFileRecord.from_row(row) for row in rows]

    def get_file(self, file_id: UUID) -> UploadFileRecord | None:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_FILE_COLUMNS} FROM upload_files f WHERE f.id = %s",
                    (str(file_id),),
                )
                row = cur.fetchone()
        return UploadFileRecord.from_row(row) if row else None

    def revoke_request(self, *, org_id: str, request_id: UUID, actor_id: str | None, now: datetime) -> bool:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE upload_requests
                    SET
                        status = 'revoked',
                        revoked_at = %s,
                        revoked_by = %s
                    WHERE id = %s
                      AND org_id = %s
                      AND status = 'active'
                      AND expires_at >= %s
                    RETURNING id
                    """,
                    (now, actor_id, str(request_id), org_id, now),
                )
                row = cur.fetchone()
            conn.commit()
        return row is not None

    def complete_request(self, *, request_id: UUID, now: datetime) -> bool:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE upload_requests
                    SET
                        status = 'completed',
                        completed_at = %s
                    WHERE id = %s
                      AND status = 'active'
                      AND expires_at >= %s
                    RETURNING id
                    """,
                    (now, str(request_id), now),
                )
                row = cur.fetchone()
            conn.commit()
        return row is not None

    def reserve_file(
        self,
        *,
        upload_file: UploadFileRecord,
        now: datetime,
        admit: QuotaAdmission,
    ) -> UploadFileRecord:
        with get_db_connection() as conn:
            try:
                with conn.cursor() as cur:
                    # Concurrent reservations for one request serialize on this lock,
                    # so the usage read below cannot go stale before the insert.
                    request = _lock_active_request(cur, request_id=upload_file.upload_request_id, now=now)
                    cur.execute(
                        f"""
                        SELECT {_FILE_COLUMNS}
                        FROM upload_files f
                        WHERE f.upload_request_id = %s
                        """,
                        (str(request.id),),
                    )
                    files = [UploadFileRecord.from_row(row) for row in cur.fetchall()]
                    admit(request, files)

                    cur.execute(
                        """
                        INSERT INTO upload_files (
                            id,
                            upload_request_id,
                            org_id,
                            file_name,
                            mime_type,
                            declared_size_bytes,
                            doc_type,
                            storage_path,
                            status,
                            uploader_ip,
                            created_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 'pending', %s, %s)
                        RETURNING id
                        """,
                        (
                            str(upload_file.id),
                            str(request.id),
                            request.org_id,
                            upload_file.file_name,
                            upload_file.mime_type,
                            upload_file.declared_size_bytes,
                            upload_file.doc_type,
                            upload_file.storage_path,
                            upload_file.uploader_ip,
                            upload_file.created_at,
                        ),
                    )
                    inserted = cur.fetchone()
                if not inserted:
                    raise PersistenceError("Failed to prepare upload.")
                conn.commit()
            except UploadPortalError:
                conn.rollback()
                raise
            except Exception as exc:
                conn.rollback()
                raise PersistenceError("Failed to prepare upload.", reason=str(exc)) from exc
        return upload_file

    def mark_file_error(self, file_id: UUID) -> bool:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE upload_files
                    SET status = 'error'
                    WHERE id = %s
                      AND status = 'pending'
                    RETURNING id
                    """,
                    (str(file_id),),
                )
                row = cur.fetchone()
            conn.commit()
        return row is not None

    def finalize_file(
        self,
        *,
        request_id: UUID,
        file_id: UUID,
        sha256: str | None,
        size_bytes: int | None,
        now: datetime,
        recorder: DocumentRecorder,
    ) -> UploadFileRecord:
        with get_db_connection() as conn:
            try:
                with conn.cursor() as cur:
                    # Revocation and completion take the same lock, so the request
                    # cannot leave the active state between this check and commit.
                    request = _lock_active_request(cur, request_id=request_id, now=now)
                    cur.execute(
                        f"""
                        UPDATE upload_files f
                        SET
                            status = 'finalized',
                            sha256 = %s,
                            size_bytes = COALESCE(%s, f.declared_size_bytes),
                            uploaded_at = %s
                        WHERE f.id = %s
                          AND f.upload_request_id = %s
                          AND f.status = 'pending'
                        RETURNING {_FILE_COLUMNS}
                        """,
                        (sha256, size_bytes, now, str(file_id), str(request_id)),
                    )
                    row = cur.fetchone()
                    if not row:
                        cur.execute(
                            "SELECT upload_request_id FROM upload_files WHERE id = %s",
                            (str(file_id),),
                        )
                        owner = cur.fetchone()
                        if owner and str(owner["upload_request_id"]) != str(request_id):
                            raise AccessDenied("upload file belongs to another request")
                        raise UploadConflict("upload file is missing or no longer pending")

                    finalized = UploadFileRecord.from_row(row)
                    document_id = recorder.create_document(
                        conn,
                        request=request,
                        upload_file=finalized,
                        size_bytes=finalized.size_bytes or finalized.declared_size_bytes,
                    )
                    cur.execute(
                        "UPDATE upload_files SET document_id = %s WHERE id = %s",
                        (str(document_id), str(file_id)),
                    )
                conn.commit()
            except UploadPortalError:
                conn.rollback()
                raise
            except Exception as exc:
                conn.rollback()
                raise PersistenceError("Failed to finalize upload.", reason=str(exc)) from exc

        return replace(finalized, document_id=document_id)

    def record_audit_event(self, event: AuditEvent) -> None:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO audit_events (
                        org_id,
                        event_type,
                        entity_type,
                        entity_id,
                        actor_id,
                        metadata,
                        ip_address
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        event.org_id,
                        event.event_type,
                        event.entity_type,
                        event.entity_id,
                        event.actor_id,
                        Json(event.metadata),
                        event.ip_address,
                    ),
                )
            conn.commit()
