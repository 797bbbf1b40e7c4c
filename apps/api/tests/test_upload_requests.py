from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import NOW
from vendor_portal.errors import AccessDenied, NotFound, UploadValidationError
from vendor_portal.models import UploadFileStatus, UploadRequestStatus
from vendor_portal.services import upload_requests
from vendor_portal.services.upload_broker import FileMeta, create_upload_url
from vendor_portal.services.upload_finalize import FinalizeMeta, finalize_upload
from vendor_portal.services.upload_tokens import hash_upload_token


def _upload_and_finalize(store, storage, recorder, created, token, *, now=NOW):
    issued = create_upload_url(
        store=store,
        storage=storage,
        request_id=str(created.request_id),
        token=token,
        file_meta=FileMeta(file_name="invoice.pdf", mime_type="application/pdf", size_bytes=2000, doc_type="invoice"),
        source_ip="203.0.113.5",
        now=now,
    )
    storage.put(issued.storage_path, 2000)
    return finalize_upload(
        store=store,
        storage=storage,
        recorder=recorder,
        request_id=str(created.request_id),
        token=token,
        upload_file_id=str(issued.upload_file_id),
        meta=FinalizeMeta(),
        source_ip="203.0.113.5",
        now=now,
    )


def test_create_upload_request_stores_hash_and_builds_portal_url(store, notifier, make_request):
    created, token = make_request()

    record = store.get_request(created.request_id)
    assert record.token_hash == hash_upload_token(token, pepper="test-pepper")
    assert token not in record.token_hash
    assert created.portal_url.startswith(
        f"https://portal.example.com/vendor-upload/work-order/{created.request_id}?t="
    )
    assert created.expires_at == NOW + timedelta(hours=72)
    assert record.status is UploadRequestStatus.ACTIVE
    assert record.created_by == "user-7"
    assert store.event_types() == ["upload_request.created"]
    assert [invitation.portal_url for invitation in notifier.sent] == [created.portal_url]


def test_create_upload_request_applies_configured_defaults(store, make_request, monkeypatch):
    monkeypatch.setenv("UPLOAD_DEFAULT_EXPIRES_HOURS", "24")
    monkeypatch.setenv("UPLOAD_DEFAULT_DOC_TYPES", "w9,coi")

    created, _token = make_request(
        allowed_doc_types=None,
        expires_in_hours=None,
        max_files=None,
        max_total_bytes=None,
    )

    record = store.get_request(created.request_id)
    assert created.expires_at == NOW + timedelta(hours=24)
    assert record.allowed_doc_types == ("w9", "coi")
    assert record.max_files == 10
    assert record.max_total_bytes == 50 * 1024 * 1024


def test_create_upload_request_rejects_blank_doc_types(make_request):
    with pytest.raises(UploadValidationError):
        make_request(allowed_doc_types=["  ", ""])


def test_create_upload_request_survives_notification_failure(store, notifier, make_request):
    notifier.fail = True

    created, _token = make_request()

    assert store.get_request(created.request_id) is not None


def test_list_upload_requests_reports_effective_status_and_counts(store, storage, recorder, work_orders, make_request):
    older, older_token = make_request(now=NOW - timedelta(hours=2), expires_in_hours=1)
    newer, newer_token = make_request()
    _upload_and_finalize(store, storage, recorder, newer, newer_token)
    create_upload_url(
        store=store,
        storage=storage,
        request_id=str(newer.request_id),
        token=newer_token,
        file_meta=FileMeta(file_name="b.pdf", mime_type="application/pdf", size_bytes=10, doc_type="invoice"),
        source_ip=None,
        now=NOW,
    )
    make_request(work_order_id="wo-other")

    summaries = upload_requests.list_upload_requests(
        store=store, work_orders=work_orders, org_id="org-1", work_order_id="wo-100", now=NOW
    )

    assert [summary.id for summary in summaries] == [newer.request_id, older.request_id]
    assert summaries[0].status is UploadRequestStatus.ACTIVE
    assert summaries[0].file_count == 1
    assert summaries[0].pending_file_count == 1
    assert summaries[1].status is UploadRequestStatus.EXPIRED
    assert older_token not in repr(summaries)


def test_list_upload_requests_is_org_scoped(make_request, store, work_orders):
    make_request()

    with pytest.raises(NotFound) as exc_info:
        upload_requests.list_upload_requests(store=store, work_orders=work_orders, org_id="org-2", work_order_id="wo-100")

    assert exc_info.value.message == "Work order not found"
    assert upload_requests.list_upload_requests(
        store=store, work_orders=work_orders, org_id="org-2", work_order_id="wo-200"
    ) == []


@pytest.mark.parametrize("work_order_id", ["wo-200", "wo-missing"])
def test_create_upload_request_requires_a_work_order_of_the_callers_org(store, notifier, make_request, work_order_id):
    with pytest.raises(NotFound) as exc_info:
        make_request(work_order_id=work_order_id)

    assert exc_info.value.message == "Work order not found"
    assert store.requests == {}
    assert store.audit_events == []
    assert notifier.sent == []


def test_revoke_upload_request_blocks_every_vendor_call(store, storage, recorder, make_request):
    created, token = make_request()
    issued = create_upload_url(
        store=store,
        storage=storage,
        request_id=str(created.request_id),
        token=token,
        file_meta=FileMeta(file_name="a.pdf", mime_type="application/pdf", size_bytes=100, doc_type="invoice"),
        source_ip=None,
        now=NOW,
    )
    storage.put(issued.storage_path, 100)

    upload_requests.revoke_upload_request(
        store=store, org_id="org-1", request_id=str(created.request_id), actor_id="user-7", now=NOW
    )

    record = store.get_request(created.request_id)
    assert record.status is UploadRequestStatus.REVOKED
    assert record.revoked_by == "user-7"
    assert record.revoked_at == NOW

    later = NOW + timedelta(minutes=1)
    with pytest.raises(AccessDenied):
        upload_requests.get_portal_status(
            store=store, request_id=str(created.request_id), token=token, source_ip=None, now=later
        )
    with pytest.raises(AccessDenied):
        create_upload_url(
            store=store,
            storage=storage,
            request_id=str(created.request_id),
            token=token,
            file_meta=FileMeta(file_name="b.pdf", mime_type="application/pdf", size_bytes=100, doc_type="invoice"),
            source_ip=None,
            now=later,
        )
    with pytest.raises(AccessDenied):
        finalize_upload(
            store=store,
            storage=storage,
            recorder=recorder,
            request_id=str(created.request_id),
            token=token,
            upload_file_id=str(issued.upload_file_id),
            meta=FinalizeMeta(),
            source_ip=None,
            now=later,
        )
    with pytest.raises(AccessDenied):
        upload_requests.complete_upload_request(
            store=store, request_id=str(created.request_id), token=token, source_ip=None, now=later
        )
    assert recorder.documents == []


def test_revoke_upload_request_is_noop_for_terminal_requests(store, make_request):
    created, _token = make_request(now=NOW - timedelta(hours=5), expires_in_hours=1)

    upload_requests.revoke_upload_request(
        store=store, org_id="org-1", request_id=created.request_id, actor_id="user-7", now=NOW
    )

    assert store.get_request(created.request_id).status is UploadRequestStatus.ACTIVE
    assert "upload_request.revoked" not in store.event_types()


@pytest.mark.parametrize("org_id", ["org-2", "org-1"])
def test_revoke_upload_request_raises_not_found_for_unknown_or_cross_org(store, make_request, org_id):
    created, _token = make_request()
    request_id = str(created.request_id) if org_id == "org-2" else str(uuid4())

    with pytest.raises(NotFound):
        upload_requests.revoke_upload_request(store=store, org_id=org_id, request_id=request_id, actor_id="u", now=NOW)


def test_get_portal_status_reports_files_and_remaining_quota(store, storage, make_request):
    created, token = make_request()
    status = upload_requests.get_portal_status(
        store=store, request_id=str(created.request_id), token=token, source_ip="198.51.100.1", now=NOW
    )

    assert status.status is UploadRequestStatus.ACTIVE
    assert status.uploaded_files == []
    assert status.remaining.files == 3
    assert status.remaining.bytes == 10 * 1024 * 1024
    assert status.allowed_doc_types == ("invoice",)

    create_upload_url(
        store=store,
        storage=storage,
        request_id=str(created.request_id),
        token=token,
        file_meta=FileMeta(file_name="a.pdf", mime_type="application/pdf", size_bytes=1024, doc_type="invoice"),
        source_ip=None,
        now=NOW,
    )
    status = upload_requests.get_portal_status(
        store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
    )

    assert [f.status for f in status.uploaded_files] == [UploadFileStatus.PENDING]
    assert status.remaining.files == 2
    assert status.remaining.bytes == 10 * 1024 * 1024 - 1024
    opened = [event for event in store.audit_events if event.event_type == "upload_request.opened"]
    assert opened[0].ip_address == "198.51.100.1"


def test_get_portal_status_includes_work_order_details(store, work_orders, make_request):
    created, token = make_request()

    status = upload_requests.get_portal_status(
        store=store,
        request_id=str(created.request_id),
        token=token,
        source_ip=None,
        work_orders=work_orders,
        now=NOW,
    )

    assert status.work_order_title == "Boiler replacement"
    assert status.work_order_number == "WO-0042"


def test_expired_request_is_denied_even_though_stored_status_is_active(store, make_request):
    created, token = make_request(expires_in_hours=1)

    with pytest.raises(AccessDenied) as exc_info:
        upload_requests.get_portal_status(
            store=store,
            request_id=str(created.request_id),
            token=token,
            source_ip=None,
            now=NOW + timedelta(hours=1, seconds=1),
        )

    assert exc_info.value.message == "Access denied."
    assert exc_info.value.reason == "upload request is expired"
    assert store.get_request(created.request_id).status is UploadRequestStatus.ACTIVE


def test_access_denied_is_identical_for_unknown_request_and_wrong_token(store, make_request):
    created, _token = make_request()

    with pytest.raises(AccessDenied) as unknown:
        upload_requests.get_portal_status(store=store, request_id=str(uuid4()), token="nope", source_ip=None, now=NOW)
    with pytest.raises(AccessDenied) as wrong_token:
        upload_requests.get_portal_status(
            store=store, request_id=str(created.request_id), token="nope", source_ip=None, now=NOW
        )
    with pytest.raises(AccessDenied) as malformed:
        upload_requests.get_portal_status(store=store, request_id="not-a-uuid", token=None, source_ip=None, now=NOW)

    assert unknown.value.message == wrong_token.value.message == malformed.value.message == "Access denied."
    assert "upload_request.access_denied" in store.event_types()


def test_audit_write_failure_does_not_fail_vendor_call(store, make_request):
    created, token = make_request()
    store.fail_audit = True

    status = upload_requests.get_portal_status(
        store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
    )

    assert status.request_id == created.request_id


def test_complete_without_a_finalized_file_is_denied(store, storage, make_request):
    created, token = make_request()
    create_upload_url(
        store=store,
        storage=storage,
        request_id=str(created.request_id),
        token=token,
        file_meta=FileMeta(file_name="a.pdf", mime_type="application/pdf", size_bytes=5, doc_type="invoice"),
        source_ip=None,
        now=NOW,
    )

    with pytest.raises(AccessDenied) as exc_info:
        upload_requests.complete_upload_request(
            store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
        )

    assert exc_info.value.message == "Access denied."
    assert exc_info.value.reason == "no finalized files"
    assert store.get_request(created.request_id).status is UploadRequestStatus.ACTIVE


def test_complete_makes_request_read_only(store, storage, recorder, make_request):
    created, token = make_request()
    _upload_and_finalize(store, storage, recorder, created, token)

    upload_requests.complete_upload_request(
        store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
    )

    record = store.get_request(created.request_id)
    assert record.status is UploadRequestStatus.COMPLETED
    assert record.completed_at == NOW
    status = upload_requests.get_portal_status(
        store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
    )
    assert status.status is UploadRequestStatus.COMPLETED
    with pytest.raises(AccessDenied):
        create_upload_url(
            store=store,
            storage=storage,
            request_id=str(created.request_id),
            token=token,
            file_meta=FileMeta(file_name="b.pdf", mime_type="application/pdf", size_bytes=5, doc_type="invoice"),
            source_ip=None,
            now=NOW,
        )
    with pytest.raises(AccessDenied):
        upload_requests.complete_upload_request(
            store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
        )


def test_completed_request_is_expired_after_expiry(store, storage, recorder, make_request):
    created, token = make_request(expires_in_hours=1)
    _upload_and_finalize(store, storage, recorder, created, token)
    upload_requests.complete_upload_request(
        store=store, request_id=str(created.request_id), token=token, source_ip=None, now=NOW
    )

    with pytest.raises(AccessDenied):
        upload_requests.get_portal_status(
            store=store,
            request_id=str(created.request_id),
            token=token,
            source_ip=None,
            now=NOW + timedelta(hours=2),
        )
