from __future__ import annotations

import re
from uuid import UUID

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from vendor_portal.config import (
    get_s3_access_key_id,
    get_s3_bucket,
    get_s3_endpoint_url,
    get_s3_region,
    get_s3_secret_access_key,
    get_s3_session_token,
)
from vendor_portal.errors import StorageUnavailable
from vendor_portal.services.upload_storage import SignedUpload

_MAX_FILENAME_LENGTH = 200
_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


def create_s3_client() -> BaseClient:
    access_key = get_s3_access_key_id()
    secret_key = get_s3_secret_access_key()
    region = get_s3_region()
    endpoint_url = get_s3_endpoint_url() or f"https://s3.{region}.amazonaws.com"
    if not access_key or not secret_key:
        raise ValueError("S3 credentials missing: set S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY")

    return boto3.client(
        "s3",
        region_name=region,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        aws_session_token=get_s3_session_token(),
        endpoint_url=endpoint_url,
    )


def ensure_s3_bucket() -> str:
    bucket = get_s3_bucket()
    if not bucket:
        raise ValueError("S3_BUCKET is not set")
    return bucket


def sanitize_filename(filename: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", filename)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    # Leading dots would allow "." / ".." segments.
    cleaned = cleaned.lstrip(".")[:_MAX_FILENAME_LENGTH]
    return cleaned or "file"


def _path_segment(value: object) -> str:
    segment = re.sub(r"[^a-zA-Z0-9_-]", "_", str(value))
    return segment or "_"


def build_upload_storage_path(
    *,
    org_id: str,
    work_order_id: str,
    vendor_id: str,
    request_id: UUID,
    file_id: UUID,
    file_name: str,
) -> str:
    return (
        f"org/{_path_segment(org_id)}"
        f"/work_orders/{_path_segment(work_order_id)}"
        f"/vendors/{_path_segment(vendor_id)}"
        f"/upload_requests/{_path_segment(request_id)}"
        f"/{_path_segment(file_id)}-{sanitize_filename(file_name)}"
    )


def build_storage_key(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def generate_presigned_put_url(
    *,
    client: BaseClient,
    bucket: str,
    key: str,
    content_type: str,
    expires_in: int = 600,
) -> str:
    return client.generate_presigned_url(
        "put_object",
        Params={
            "Bucket": bucket,
            "Key": key,
            "ContentType": content_type,
        },
        ExpiresIn=expires_in,
        HttpMethod="PUT",
    )


def head_object_size(*, client: BaseClient, bucket: str, key: str) -> int | None:
    try:
        response = client.head_object(Bucket=bucket, Key=key)
    except ClientError as exc:
        error_code = str(exc.response.get("Error", {}).get("Code", ""))
        if error_code in _MISSING_OBJECT_CODES:
            return None
        raise
    return int(response.get("ContentLength", 0))


class S3UploadStorage:
    """UploadStorage backed by an S3-compatible bucket."""

    def __init__(self, *, client: BaseClient, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_env(cls) -> S3UploadStorage:
        try:
            return cls(client=create_s3_client(), bucket=ensure_s3_bucket())
        except ValueError as exc:
            raise StorageUnavailable("Storage is not configured.", reason=str(exc)) from exc

    def create_signed_upload_url(self, *, storage_path: str, content_type: str, expires_in: int) -> SignedUpload:
        try:
            url = generate_presigned_put_url(
                client=self._client,
                bucket=self._bucket,
                key=storage_path,
                content_type=content_type,
                expires_in=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailable("Failed to generate upload URL.", reason=str(exc)) from exc
        return SignedUpload(
            url=url,
            method="PUT",
            headers={"Content-Type": content_type},
            expires_in=expires_in,
        )

    def stat_object_size(self, *, storage_path: str) -> int | None:
        try:
            return head_object_size(client=self._client, bucket=self._bucket, key=storage_path)
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailable("Failed to verify uploaded object.", reason=str(exc)) from exc
