from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID

from vendor_portal.errors import StorageUnavailable
from vendor_portal.models import UploadFileRecord, UploadRequestRecord
from vendor_portal.services.s3_storage import build_storage_key, ensure_s3_bucket


class DocumentRecorder(Protocol):
    """Creates the platform Document for a finalized upload.

    ``conn`` is the connection holding the finalize transaction; writes made
    through it commit or roll back together with the file's state change.
    """

    def create_document(
        self,
        conn: Any,
        *,
        request: UploadRequestRecord,
        upload_file: UploadFileRecord,
        size_bytes: int,
    ) -> UUID:
        ...


class PostgresDocumentRecorder:
    def __init__(self, *, bucket: str | None = None) -> None:
        # Same bucket the signed URLs were issued against.
        try:
            self._bucket = bucket or ensure_s3_bucket()
        except ValueError as exc:
            raise StorageUnavailable("Storage is not configured.", reason=str(exc)) from exc

    def create_document(
        self,
        conn: Any,
        *,
        request: UploadRequestRecord,
        upload_file: UploadFileRecord,
        size_bytes: int,
    ) -> UUID:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO documents (
                    org_id,
                    file_name,
                    mime_type,
                    size_bytes,
                    sha256,
                    storage_key,
                    source
                )
                VALUES (%s, %s, %s, %s, %s, %s, 'vendor_upload_portal')
                RETURNING id
                """,
                (
                    request.org_id,
                    upload_file.file_name,
                    upload_file.mime_type,
                    size_bytes,
                    upload_file.sha256,
                    build_storage_key(self._bucket, upload_file.storage_path),
                ),
            )
            document = cur.fetchone()
            if not document:
                raise RuntimeError("documents insert returned no row")
            document_id = document["id"]

            cur.execute(
                """
                INSERT INTO work_order_documents (work_order_id, document_id, doc_type)
                VALUES (%s, %s, %s)
                """,
                (request.work_order_id, str(document_id), upload_file.doc_type),
            )
            cur.execute(
                """
                INSERT INTO vendor_documents (vendor_id, document_id, doc_type)
                VALUES (%s, %s, %s)
                """,
                (request.vendor_id, str(document_id), upload_file.doc_type),
            )
        return document_id
