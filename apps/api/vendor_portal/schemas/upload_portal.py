import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from vendor_portal.models import UploadFileStatus, UploadRequestStatus

_MAX_TOTAL_BYTES_LIMIT = 1024 * 1024 * 1024
_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")
# Free text may span lines; tabs and line breaks are kept.
_TEXT_CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _reject_control_characters(value: str, pattern: re.Pattern[str] = _CONTROL_CHARACTERS) -> str:
    if pattern.search(value):
        raise ValueError("must not contain control characters")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateUploadRequestBody(CamelModel):
    vendor_id: str = Field(min_length=1, max_length=128)
    request_email: EmailStr
    allowed_doc_types: list[str] | None = Field(default=None, min_length=1, max_length=50)
    expires_in_hours: int | None = Field(default=None, ge=1, le=720)
    max_files: int | None = Field(default=None, ge=1, le=100)
    max_total_bytes: int | None = Field(default=None, ge=1, le=_MAX_TOTAL_BYTES_LIMIT)
    message: str | None = Field(default=None, max_length=2000)

    @field_validator("vendor_id")
    @classmethod
    def validate_vendor_id(cls, value: str) -> str:
        return _reject_control_characters(value)

    @field_validator("allowed_doc_types")
    @classmethod
    def validate_allowed_doc_types(cls, value: list[str] | None) -> list[str] | None:
        if value is not None:
            for doc_type in value:
                _reject_control_characters(doc_type)
        return value

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _reject_control_characters(value, _TEXT_CONTROL_CHARACTERS)


class CreateUploadRequestResponse(CamelModel):
    request_id: UUID
    portal_url: str
    expires_at: datetime


class UploadRequestSummaryItem(CamelModel):
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
    created_by: str | None = None


class UploadRequestListResponse(CamelModel):
    data: list[UploadRequestSummaryItem]


class CreateUploadUrlBody(CamelModel):
    file_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=255)
    # Zero and negative sizes are rejected by the file policy with its own message.
    size_bytes: int
    doc_type: str = Field(min_length=1, max_length=64)

    @field_validator("file_name", "mime_type", "doc_type")
    @classmethod
    def validate_printable(cls, value: str) -> str:
        return _reject_control_characters(value)


class UploadUrlData(CamelModel):
    signed_url: str
    upload_file_id: UUID
    storage_path: str
    upload_method: str = "PUT"
    upload_headers: dict[str, str]
    expires_in_sec: int


class UploadUrlResponse(CamelModel):
    data: UploadUrlData


class FinalizeBody(CamelModel):
    upload_file_id: str = Field(min_length=1, max_length=64)
    sha256: str | None = Field(default=None, pattern=r"^[a-fA-F0-9]{64}$")
    size_bytes: int | None = Field(default=None, ge=0)


class UploadedFileItem(CamelModel):
    id: UUID
    file_name: str
    doc_type: str
    mime_type: str
    status: UploadFileStatus
    declared_size_bytes: int
    size_bytes: int | None = None
    created_at: datetime
    uploaded_at: datetime | None = None


class PortalStatusData(CamelModel):
    request_id: UUID
    status: UploadRequestStatus
    allowed_doc_types: list[str]
    max_files: int
    max_total_bytes: int
    expires_at: datetime
    message: str | None = None
    uploaded_files: list[UploadedFileItem]
    remaining_files: int
    remaining_bytes: int
    work_order_title: str | None = None
    work_order_number: str | None = None


class PortalStatusResponse(CamelModel):
    data: PortalStatusData


class SuccessResponse(CamelModel):
    success: bool = True
