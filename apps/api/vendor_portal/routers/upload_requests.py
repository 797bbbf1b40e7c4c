from fastapi import APIRouter, Depends, Path, status

from vendor_portal.dependencies import get_notifier, get_upload_store, get_work_order_directory
from vendor_portal.models import RequestContext
from vendor_portal.repositories.upload_store import UploadStore
from vendor_portal.schemas.upload_portal import (
    CreateUploadRequestBody,
    CreateUploadRequestResponse,
    SuccessResponse,
    UploadRequestListResponse,
    UploadRequestSummaryItem,
)
from vendor_portal.security import get_request_context
from vendor_portal.services.notifications import UploadRequestNotifier
from vendor_portal.services.upload_requests import (
    CreateUploadRequestParams,
    create_upload_request,
    list_upload_requests,
    revoke_upload_request,
)
from vendor_portal.services.work_orders import WorkOrderDirectory

router = APIRouter(tags=["upload-requests"])

_WORK_ORDER_ID_PATTERN = r"^[^\x00-\x1f\x7f]+$"


@router.post(
    "/work-orders/{work_order_id}/upload-requests",
    response_model=CreateUploadRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_work_order_upload_request(
    payload: CreateUploadRequestBody,
    work_order_id: str = Path(min_length=1, max_length=128, pattern=_WORK_ORDER_ID_PATTERN),
    ctx: RequestContext = Depends(get_request_context),
    store: UploadStore = Depends(get_upload_store),
    notifier: UploadRequestNotifier = Depends(get_notifier),
    work_orders: WorkOrderDirectory = Depends(get_work_order_directory),
) -> CreateUploadRequestResponse:
    created = create_upload_request(
        store=store,
        notifier=notifier,
        work_orders=work_orders,
        ctx=ctx,
        params=CreateUploadRequestParams(
            work_order_id=work_order_id,
            vendor_id=payload.vendor_id,
            request_email=str(payload.request_email),
            allowed_doc_types=payload.allowed_doc_types,
            expires_in_hours=payload.expires_in_hours,
            max_files=payload.max_files,
            max_total_bytes=payload.max_total_bytes,
            message=payload.message,
        ),
    )
    return CreateUploadRequestResponse(
        request_id=created.request_id,
        portal_url=created.portal_url,
        expires_at=created.expires_at,
    )


@router.get(
    "/work-orders/{work_order_id}/upload-requests",
    response_model=UploadRequestListResponse,
)
def list_work_order_upload_requests(
    work_order_id: str = Path(min_length=1, max_length=128, pattern=_WORK_ORDER_ID_PATTERN),
    ctx: RequestContext = Depends(get_request_context),
    store: UploadStore = Depends(get_upload_store),
    work_orders: WorkOrderDirectory = Depends(get_work_order_directory),
) -> UploadRequestListResponse:
    summaries = list_upload_requests(
        store=store,
        work_orders=work_orders,
        org_id=ctx.org_id,
        work_order_id=work_order_id,
    )
    return UploadRequestListResponse(
        data=[
            UploadRequestSummaryItem(
                id=summary.id,
                vendor_id=summary.vendor_id,
                request_email=summary.request_email,
                status=summary.status,
                expires_at=summary.expires_at,
                max_files=summary.max_files,
                max_total_bytes=summary.max_total_bytes,
                file_count=summary.file_count,
                pending_file_count=summary.pending_file_count,
                created_at=summary.created_at,
                created_by=summary.created_by,
            )
            for summary in summaries
        ]
    )


@router.post("/upload-requests/{request_id}/revoke", response_model=SuccessResponse)
def revoke_work_order_upload_request(
    request_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: UploadStore = Depends(get_upload_store),
) -> SuccessResponse:
    revoke_upload_request(
        store=store,
        org_id=ctx.org_id,
        request_id=request_id,
        actor_id=ctx.actor_id,
    )
    return SuccessResponse()
