"""Caller identity for the two audiences of this API.

Staff calls arrive through the platform gateway, which has already
authenticated the session and forwards the organization and user it
resolved. Vendor calls carry no identity at all; only their source address
is captured, for logs, audit rows and upstream throttling.
"""

from fastapi import Header, HTTPException, Request, status

from vendor_portal.config import get_trusted_proxy_hops
from vendor_portal.models import RequestContext


def get_request_context(
    org_id: str | None = Header(default=None, alias="X-Org-Id"),
    user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> RequestContext:
    org_id = (org_id or "").strip()
    user_id = (user_id or "").strip()
    if not org_id or not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return RequestContext(org_id=org_id, actor_id=user_id)


def get_source_ip(request: Request) -> str | None:
    # Each trusted proxy appends the address it received from, so the client
    # is the entry that many hops from the right. Anything further left is
    # client-supplied.
    trusted_hops = get_trusted_proxy_hops()
    if trusted_hops:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        if len(hops) >= trusted_hops:
            return hops[-trusted_hops]
    return request.client.host if request.client else None
