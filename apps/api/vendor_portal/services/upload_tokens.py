from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from vendor_portal.config import get_upload_token_pepper

_TOKEN_BYTES = 32
# token_urlsafe(32) yields 43 characters; anything far longer is not ours.
_MAX_TOKEN_LENGTH = 256


@dataclass(frozen=True)
class IssuedToken:
    secret: str
    token_hash: str


def hash_upload_token(raw_token: str, *, pepper: str | None = None) -> str:
    key = (pepper if pepper is not None else get_upload_token_pepper()).encode("utf-8")
    return hmac.new(key, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_upload_token(*, pepper: str | None = None) -> IssuedToken:
    """Generate a bearer secret for a portal URL and the digest to persist."""
    secret = secrets.token_urlsafe(_TOKEN_BYTES)
    return IssuedToken(secret=secret, token_hash=hash_upload_token(secret, pepper=pepper))


def verify_upload_token(candidate: object, stored_hash: str | None, *, pepper: str | None = None) -> bool:
    """Constant-time check of ``candidate`` against a stored digest.

    Malformed input of any kind yields ``False`` rather than an exception.
    """
    if not isinstance(candidate, str) or not candidate or len(candidate) > _MAX_TOKEN_LENGTH:
        return False
    if not candidate.isascii() or not isinstance(stored_hash, str) or not stored_hash:
        return False
    candidate_hash = hash_upload_token(candidate, pepper=pepper)
    return hmac.compare_digest(candidate_hash.encode("ascii"), stored_hash.encode("ascii", "replace"))
