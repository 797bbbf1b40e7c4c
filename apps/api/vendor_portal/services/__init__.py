from vendor_portal.services.documents import DocumentRecorder, PostgresDocumentRecorder
from vendor_portal.services.notifications import (
    ResendNotifier,
    UploadRequestInvitation,
    UploadRequestNotifier,
    render_upload_request_email,
)
from vendor_portal.services.s3_storage import (
    S3UploadStorage,
    build_storage_key,
    build_upload_storage_path,
    create_s3_client,
    ensure_s3_bucket,
    generate_presigned_put_url,
    head_object_size,
    sanitize_filename,
)
from vendor_portal.services.upload_quota import (
    FilePolicy,
    QuotaUsage,
    RemainingQuota,
    check_doc_type,
    check_file_policy,
    check_quota_admission,
    get_file_policy,
    remaining_quota,
    summarize_usage,
)
from vendor_portal.services.upload_storage import SignedUpload, UploadStorage
from vendor_portal.services.upload_tokens import IssuedToken, hash_upload_token, issue_upload_token, verify_upload_token
from vendor_portal.services.work_orders import PostgresWorkOrderDirectory, WorkOrderDirectory, WorkOrderRecord

__all__ = [
    "DocumentRecorder",
    "PostgresDocumentRecorder",
    "ResendNotifier",
    "UploadRequestInvitation",
    "UploadRequestNotifier",
    "render_upload_request_email",
    "S3UploadStorage",
    "build_storage_key",
    "build_upload_storage_path",
    "create_s3_client",
    "ensure_s3_bucket",
    "generate_presigned_put_url",
    "head_object_size",
    "sanitize_filename",
    "FilePolicy",
    "QuotaUsage",
    "RemainingQuota",
    "check_doc_type",
    "check_file_policy",
    "check_quota_admission",
    "get_file_policy",
    "remaining_quota",
    "summarize_usage",
    "SignedUpload",
    "UploadStorage",
    "IssuedToken",
    "hash_upload_token",
    "issue_upload_token",
    "verify_upload_token",
    "PostgresWorkOrderDirectory",
    "WorkOrderDirectory",
    "WorkOrderRecord",
]
