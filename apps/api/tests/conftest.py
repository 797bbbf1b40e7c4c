import threading
from dataclasses import replace
from datetime import UTC, datetime
from urllib.parse import parse_qs, urlparse
from uuid import UUID, uuid4

import pytest

from vendor_portal.errors import AccessDenied, PersistenceError, UploadConflict
from vendor_portal.models import (
    AuditEvent,
    RequestContext,
    UploadFileRecord,
    UploadFileStatus,
    UploadRequestRecord,
    UploadRequestStatus,
    UploadRequestSummaryRecord,
    effective_request_status,
)
from vendor_portal.services.upload_requests import CreateUploadRequestParams, create_upload_request
from vendor_portal.services.upload_storage import SignedUpload
from vendor_portal.services.work_orders import WorkOrderRecord

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeUploadStore:
    """In-memory UploadStore; one lock stands in for the request row lock."""

    def __init__(self):
        self.requests: dict[UUID, UploadRequestRecord] = {}
        self.files: dict[UUID, UploadFileRecord] = {}
        self.audit_events: list[AuditEvent] = []
        self.fail_audit = False
        self._lock = threading.Lock()

    def insert_request(self, record):
        self.requests[record.id] = record
        return record

    def get_request(self, request_id):
        return self.requests.get(request_id)

    def list_request_summaries(self, *, org_id, work_order_id):
        matching = [
            record
            for record in self.requests.values()
            if record.org_id == org_id and record.work_order_id == work_order_id
        ]
        matching.sort(key=lambda record: record.created_at, reverse=True)
        summaries = []
        for record in matching:
            files = self.list_files(record.id)
            summaries.append(
                UploadRequestSummaryRecord(
                    request=record,
                    file_count=sum(1 for f in files if f.status is UploadFileStatus.FINALIZED),
                    pending_file_count=sum(1 for f in files if f.status is UploadFileStatus.PENDING),
                )
            )
        return summaries

    def list_files(self, request_id):
        files = [f for f in self.files.values() if f.upload_request_id == request_id]
        return sorted(files, key=lambda f: f.created_at)

    def get_file(self, file_id):
        return self.files.get(file_id)

    def _update_if_active(self, request_id, now, **changes):
        with self._lock:
            record = self.requests.get(request_id)
            if record is None or record.status is not UploadRequestStatus.ACTIVE or record.expires_at < now:
                return False
            self.requests[request_id] = replace(record, **changes)
            return True

    def revoke_request(self, *, org_id, request_id, actor_id, now):
        record = self.requests.get(request_id)
        if record is None or record.org_id != org_id:
            return False
        return self._update_if_active(
            request_id,
            now,
            status=UploadRequestStatus.REVOKED,
            revoked_at=now,
            revoked_by=actor_id,
        )

    def complete_request(self, *, request_id, now):
        return self._update_if_active(
            request_id,
            now,
            status=UploadRequestStatus.COMPLETED,
            completed_at=now,
        )

    def _locked_active_request(self, request_id, now):
        record = self.requests.get(request_id)
        if record is None:
            raise AccessDenied("upload request vanished")
        status = effective_request_status(record, now)
        if status is not UploadRequestStatus.ACTIVE:
            raise AccessDenied(f"upload request is {status.value}")
        return record

    def reserve_file(self, *, upload_file, now, admit):
        with self._lock:
            request = self._locked_active_request(upload_file.upload_request_id, now)
            admit(request, self.list_files(request.id))
            self.files[upload_file.id] = upload_file
        return upload_file

    def mark_file_error(self, file_id):
        with self._lock:
            upload_file = self.files.get(file_id)
            if upload_file is None or upload_file.status is not UploadFileStatus.PENDING:
                return False
            self.files[file_id] = replace(upload_file, status=UploadFileStatus.ERROR)
            return True

    def finalize_file(self, *, request_id, file_id, sha256, size_bytes, now, recorder):
        with self._lock:
            request = self._locked_active_request(request_id, now)
            upload_file = self.files.get(file_id)
            if upload_file is not None and upload_file.upload_request_id != request_id:
                raise AccessDenied("upload file belongs to another request")
            if upload_file is None or upload_file.status is not UploadFileStatus.PENDING:
                raise UploadConflict("upload file is missing or no longer pending")

            finalized = replace(
                upload_file,
                status=UploadFileStatus.FINALIZED,
                sha256=sha256,
                size_bytes=size_bytes if size_bytes is not None else upload_file.declared_size_bytes,
                uploaded_at=now,
            )
            # Nothing is written unless the document is created.
            try:
                document_id = recorder.create_document(
                    self,
                    request=request,
                    upload_file=finalized,
                    size_bytes=finalized.size_bytes,
                )
            except Exception as exc:
                raise PersistenceError("Failed to finalize upload.", reason=str(exc)) from exc
            finalized = replace(finalized, document_id=document_id)
            self.files[file_id] = finalized
        return finalized

    def record_audit_event(self, event):
        if self.fail_audit:
            raise RuntimeError("audit table unavailable")
        self.audit_events.append(event)

    def event_types(self):
        return [event.event_type for event in self.audit_events]


class FakeUploadStorage:
    def __init__(self):
        self.signed: list[dict] = []
        self.objects: dict[str, int] = {}
        self.fail_signing = False

    def create_signed_upload_url(self, *, storage_path, content_type, expires_in):
        if self.fail_signing:
            raise RuntimeError("storage provider unavailable")
        self.signed.append(
            {"storage_path": storage_path, "content_type": content_type, "expires_in": expires_in}
        )
        return SignedUpload(
            url=f"https://storage.test/{storage_path}?X-Amz-Signature=abc",
            method="PUT",
            headers={"Content-Type": content_type},
            expires_in=expires_in,
        )

    def stat_object_size(self, *, storage_path):
        return self.objects.get(storage_path)

    def put(self, storage_path, size_bytes):
        self.objects[storage_path] = size_bytes


class FakeDocumentRecorder:
    def __init__(self):
        self.documents: list[dict] = []
        self.fail = False

    def create_document(self, conn, *, request, upload_file, size_bytes):
        del conn
        if self.fail:
            raise RuntimeError("documents insert failed")
        document_id = uuid4()
        self.documents.append(
            {
                "id": document_id,
                "work_order_id": request.work_order_id,
                "vendor_id": request.vendor_id,
                "upload_file_id": upload_file.id,
                "doc_type": upload_file.doc_type,
                "size_bytes": size_bytes,
            }
        )
        return document_id


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_upload_request(self, invitation):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append(invitation)
        return True


class FakeWorkOrderDirectory:
    def __init__(self, *work_orders: WorkOrderRecord):
        self.work_orders = {(work_order.org_id, work_order.id): work_order for work_order in work_orders}

    def get(self, *, org_id, work_order_id):
        return self.work_orders.get((org_id, work_order_id))


def token_from_portal_url(portal_url: str) -> str:
    return parse_qs(urlparse(portal_url).query)["t"][0]


@pytest.fixture(autouse=True)
def _upload_env(monkeypatch):
    monkeypatch.setenv("UPLOAD_TOKEN_PEPPER", "test-pepper")
    monkeypatch.setenv("PORTAL_BASE_URL", "https://portal.example.com")
    monkeypatch.setenv("UPLOAD_VERIFY_OBJECTS", "true")
    for name in (
        "UPLOAD_DEFAULT_EXPIRES_HOURS",
        "UPLOAD_DEFAULT_MAX_FILES",
        "UPLOAD_DEFAULT_MAX_TOTAL_BYTES",
        "UPLOAD_DEFAULT_DOC_TYPES",
        "UPLOAD_ALLOWED_MIME_TYPES",
        "UPLOAD_MAX_FILE_BYTES",
        "SIGNED_URL_TTL_SECONDS",
        "TRUSTED_PROXY_HOPS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store():
    return FakeUploadStore()


@pytest.fixture
def storage():
    return FakeUploadStorage()


@pytest.fixture
def recorder():
    return FakeDocumentRecorder()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def work_orders():
    return FakeWorkOrderDirectory(
        WorkOrderRecord(id="wo-100", org_id="org-1", title="Boiler replacement", work_order_number=42),
        WorkOrderRecord(id="wo-other", org_id="org-1", title="Roof inspection", work_order_number=7),
        WorkOrderRecord(id="wo-200", org_id="org-2", title="Parking lot resurfacing", work_order_number=3),
    )


@pytest.fixture
def staff():
    return RequestContext(org_id="org-1", actor_id="user-7")


@pytest.fixture
def make_request(store, notifier, work_orders, staff):
    """Create an upload request and return ``(created, raw_token)``."""

    def _make(*, now=NOW, **overrides):
        params = {
            "work_order_id": "wo-100",
            "vendor_id": "vendor-9",
            "request_email": "billing@acme-supplies.com",
            "allowed_doc_types": ["invoice"],
            "expires_in_hours": 72,
            "max_files": 3,
            "max_total_bytes": 10 * 1024 * 1024,
        }
        params.update(overrides)
        created = create_upload_request(
            store=store,
            notifier=notifier,
            work_orders=work_orders,
            ctx=staff,
            params=CreateUploadRequestParams(**params),
            now=now,
        )
        return created, token_from_portal_url(created.portal_url)

    return _make
