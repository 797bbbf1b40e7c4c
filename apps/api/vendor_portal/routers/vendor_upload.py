"""Public endpoints used by the vendor portal page.

The only credential is the ``t`` query parameter from the portal URL. Every
handler passes it straight to the service layer, which rejects a missing or
wrong token with the same AccessDenied as any other failure.
"""

from fastapi import APIRouter, Depends, Query, Request

from vendor_portal.dependencies import (
    get_document_recorder,
    get_upload_storage,
    get_upload_store,
    get_work_order_directory,
)
from vendor_portal.repositories.upload_store import UploadStore
from vendor_portal.schemas.upload_portal import (
    CreateUploadUrlBody,
    FinalizeBody,
    PortalStatusData,
    PortalStatusResponse,
    SuccessResponse,
    UploadedFileItem,
    UploadUrlData,
    UploadUrlResponse,
)
from vendor_portal.security import get_source_ip
from vendor_portal.services.documents import DocumentRecorder
from vendor_portal.services.upload_broker import FileMeta, create_upload_url
from vendor_portal.services.upload_finalize import FinalizeMeta, finalize_upload
from vendor_portal.services.upload_requests import complete_upload_request, get_portal_status
from vendor_portal.services.upload_storage import UploadStorage
from vendor_portal.services.work_orders import WorkOrderDirectory

router = APIRouter(prefix="/upload", tags=["vendor-upload"])


@router.get("/{request_id}/status", response_model=PortalStatusResponse)
def get_upload_status(
    request_id: str,
    request: Request,
    t: str | None = Query(default=None),
    store: UploadStore = Depends(get_upload_store),
    work_orders: WorkOrderDirectory = Depends(get_work_order_directory),
) -> PortalStatusResponse:
    portal_status = get_portal_status(
        store=store,
        request_id=request_id,
        token=t,
        source_ip=get_source_ip(request),
        work_orders=work_orders,
    )
    return PortalStatusResponse(
        data=PortalStatusData(
            request_id=portal_status.request_id,
            status=portal_status.status,
            allowed_doc_types=list(portal_status.allowed_doc_types),
            max_files=portal_status.max_files,
            max_total_bytes=portal_status.max_total_bytes,
            expires_at=portal_status.expires_at,
            message=portal_status.message,
            uploaded_files=[
                UploadedFileItem(
                    id=upload_file.id,
                    file_name=upload_file.file_name,
                    doc_type=upload_file.doc_type,
                    mime_type=upload_file.mime_type,
                    status=upload_file.status,
                    declared_size_bytes=upload_file.declared_size_bytes,
                    size_bytes=upload_file.size_bytes,
                    created_at=upload_file.created_at,
                    uploaded_at=upload_file.uploaded_at,
                )
                for upload_file in portal_status.uploaded_files
            ],
            remaining_files=portal_status.remaining.files,
            remaining_bytes=portal_status.remaining.bytes,
            work_order_title=portal_status.work_order_title,
            work_order_number=portal_status.work_order_number,
        )
    )


@router.post("/{request_id}/create-upload-url", response_model=UploadUrlResponse)
def create_signed_upload_url(
    request_id: str,
    payload: CreateUploadUrlBody,
    request: Request,
    t: str | None = Query(default=None),
    store: UploadStore = Depends(get_upload_store),
    storage: UploadStorage = Depends(get_upload_storage),
) -> UploadUrlResponse:
    issued = create_upload_url(
        store=store,
        storage=storage,
        request_id=request_id,
        token=t,
        file_meta=FileMeta(
            file_name=payload.file_name,
            mime_type=payload.mime_type,
            size_bytes=payload.size_bytes,
            doc_type=payload.doc_type,
        ),
        source_ip=get_source_ip(request),
    )
    return UploadUrlResponse(
        data=UploadUrlData(
            signed_url=issued.signed_url,
            upload_file_id=issued.upload_file_id,
            storage_path=issued.storage_path,
            upload_method=issued.method,
            upload_headers=issued.headers,
            expires_in_sec=issued.expires_in,
        )
    )


@router.post("/{request_id}/finalize", response_model=SuccessResponse)
def finalize_uploaded_file(
    request_id: str,
    payload: FinalizeBody,
    request: Request,
    t: str | None = Query(default=None),
    store: UploadStore = Depends(get_upload_store),
    storage: UploadStorage = Depends(get_upload_storage),
    recorder: DocumentRecorder = Depends(get_document_recorder),
) -> SuccessResponse:
    finalize_upload(
        store=store,
        storage=storage,
        recorder=recorder,
        request_id=request_id,
        token=t,
        upload_file_id=payload.upload_file_id,
        meta=FinalizeMeta(sha256=payload.sha256, size_bytes=payload.size_bytes),
        source_ip=get_source_ip(request),
    )
    return SuccessResponse()


@router.post("/{request_id}/complete", response_model=SuccessResponse)
def complete_upload(
    request_id: str,
    request: Request,
    t: str | None = Query(default=None),
    store: UploadStore = Depends(get_upload_store),
) -> SuccessResponse:
    complete_upload_request(
        store=store,
        request_id=request_id,
        token=t,
        source_ip=get_source_ip(request),
    )
    return SuccessResponse()
