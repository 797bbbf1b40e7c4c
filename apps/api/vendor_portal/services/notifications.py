from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Protocol

import httpx

from vendor_portal.config import (
    get_app_name,
    get_resend_api_key,
    get_resend_base_url,
    get_resend_from_domain,
)
from vendor_portal.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadRequestInvitation:
    request_id: str
    request_email: str
    portal_url: str
    expires_at: datetime
    allowed_doc_types: tuple[str, ...]
    message: str | None = None


class UploadRequestNotifier(Protocol):
    def send_upload_request(self, invitation: UploadRequestInvitation) -> bool:
        """Deliver the portal link; return whether a message was handed off."""
        ...


def render_upload_request_email(invitation: UploadRequestInvitation, *, app_name: str) -> str:
    portal_url = escape(invitation.portal_url, quote=True)
    message_block = ""
    if invitation.message:
        message_block = (
            '<p style="background: #f5f5f5; padding: 12px; border-radius: 8px;">'
            f"<em>&ldquo;{escape(invitation.message)}&rdquo;</em></p>"
        )
    doc_types = escape(", ".join(invitation.allowed_doc_types))
    expires = escape(invitation.expires_at.strftime("%Y-%m-%d %H:%M %Z").strip())
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #1a1a1a;">Document Upload Request</h2>'
        f"<p>{escape(app_name)} has asked you to upload documents. "
        "Please use the link below to submit your files.</p>"
        f"{message_block}"
        f"<p><strong>Allowed types:</strong> {doc_types}</p>"
        f"<p><strong>Link expires:</strong> {expires}</p>"
        f'<a href="{portal_url}" style="display: inline-block; padding: 12px 24px; '
        'background: #2563eb; color: #fff; text-decoration: none; border-radius: 8px; '
        'font-weight: 600; margin: 16px 0;">Upload Documents</a>'
        '<p style="color: #666; font-size: 13px;">If the button above does not work, '
        f'copy and paste this URL into your browser:<br/><a href="{portal_url}">{portal_url}</a></p>'
        "</div>"
    )


class ResendNotifier:
    """Sends upload request emails through the Resend HTTP API."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        from_domain: str | None = None,
        app_name: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key if api_key is not None else get_resend_api_key()
        self._base_url = (base_url or get_resend_base_url()).rstrip("/")
        self._from_domain = from_domain or get_resend_from_domain()
        self._app_name = app_name or get_app_name()
        self._timeout = timeout

    def send_upload_request(self, invitation: UploadRequestInvitation) -> bool:
        if not self._api_key:
            logger.warning(
                "upload_request.notification_skipped",
                request_id=invitation.request_id,
                reason="RESEND_API_KEY not set",
            )
            return False

        payload = {
            "from": f"{self._app_name} <no-reply@{self._from_domain}>",
            "to": [invitation.request_email],
            "subject": f"Document Upload Request - {self._app_name}",
            "html": render_upload_request_email(invitation, app_name=self._app_name),
        }
        with httpx.Client(timeout=self._timeout) as client:
            response = client.post(
                f"{self._base_url}/emails",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            response.raise_for_status()
        return True
