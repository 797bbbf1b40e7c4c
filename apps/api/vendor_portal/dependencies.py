from vendor_portal.repositories.upload_store import PostgresUploadStore, UploadStore
from vendor_portal.services.documents import DocumentRecorder, PostgresDocumentRecorder
from vendor_portal.services.notifications import ResendNotifier, UploadRequestNotifier
from vendor_portal.services.s3_storage import S3UploadStorage
from vendor_portal.services.upload_storage import UploadStorage
from vendor_portal.services.work_orders import PostgresWorkOrderDirectory, WorkOrderDirectory


def get_upload_store() -> UploadStore:
    return PostgresUploadStore()


def get_upload_storage() -> UploadStorage:
    return S3UploadStorage.from_env()


def get_document_recorder() -> DocumentRecorder:
    return PostgresDocumentRecorder()


def get_notifier() -> UploadRequestNotifier:
    return ResendNotifier()


def get_work_order_directory() -> WorkOrderDirectory:
    return PostgresWorkOrderDirectory()
