"""
HMAC-SHA256 request signing for Accurate API calls.

The canonical string is ``METHOD\\nPATH_WITH_QUERY\\nTIMESTAMP``. Signing is a
pure function; headers are rebuilt for every attempt so a retried request
never reuses a stale timestamp.
"""

import hashlib
import hmac
import time
from typing import Dict, Optional

from ..constants import AccurateHeader


def canonical_string(method: str, path: str, timestamp: int) -> str:
    """Build the string that gets signed."""
    return f"{method.upper()}\n{path}\n{timestamp}"


def sign(method: str, path: str, timestamp: int, signature_secret: str) -> str:
    """
    Sign a request.

    Args:
        method: HTTP method (case-insensitive)
        path: Request path including the query string
        timestamp: Unix time in seconds
        signature_secret: Shared HMAC secret

    Returns:
        Lowercase hex digest
    """
    message = canonical_string(method, path, timestamp).encode("utf-8")
    return hmac.new(signature_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signed_headers(
    method: str,
    path: str,
    api_token: str,
    signature_secret: str,
    session: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Dict[str, str]:
    """Authentication headers for one attempt of a signed call."""
    if timestamp is None:
        timestamp = int(time.time())

    headers = {
        AccurateHeader.AUTHORIZATION.value: f"Bearer {api_token}",
        AccurateHeader.TIMESTAMP.value: str(timestamp),
        AccurateHeader.SIGNATURE.value: sign(method, path, timestamp, signature_secret),
    }
    if session:
        headers[AccurateHeader.SESSION.value] = session
    return headers
