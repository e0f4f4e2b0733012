"""
=============================================================================
SIGNED VALUES
=============================================================================

Values the server hands to the browser and expects back unchanged: the
source page (`_sourcePage`), the fields-present manifest (`__fp`) and any
field declared `encrypted=True`.

    seal("/user/edit.html")
        │
        ▼
    "L3VzZXIvZWRpdC5odG1s.5mQ3xG..."
     ───────┬──────────── ────┬───
        base64url(value)   base64url(HMAC-SHA256(key, value))

The value is only base64 encoded, not hidden. What the signature buys is that
a client cannot alter it: unseal() returns None for anything whose signature
does not verify.

In debug mode seal/unseal pass values through untouched so forms can be
inspected by hand.

=============================================================================
"""

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Optional, Union

logger = logging.getLogger(__name__)


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class ValueSealer:
    """
    Signs and verifies string values with HMAC-SHA256.

    Args:
        key: Signing key. A random key is generated when omitted, which
             means sealed values do not survive a restart.
        debug_mode: Pass values through without signing.
    """

    def __init__(self, key: Union[str, bytes, None] = None, debug_mode: bool = False):
        if key is None:
            key = secrets.token_bytes(32)
        elif isinstance(key, str):
            key = key.encode("utf-8")
        self._key = key
        self.debug_mode = debug_mode

    def seal(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if self.debug_mode:
            return value
        payload = value.encode("utf-8")
        return f"{_b64encode(payload)}.{_b64encode(self._signature(payload))}"

    def unseal(self, token: Optional[str]) -> Optional[str]:
        """The original value, or None when the token was tampered with."""
        if token is None:
            return None
        if self.debug_mode:
            return token

        encoded, sep, signature = token.partition(".")
        if not sep:
            logger.debug(f"Rejecting unsigned value {token!r}")
            return None
        try:
            payload = _b64decode(encoded)
            supplied = _b64decode(signature)
        except (ValueError, TypeError):
            logger.debug(f"Rejecting malformed sealed value {token!r}")
            return None

        if not hmac.compare_digest(self._signature(payload), supplied):
            logger.debug(f"Rejecting sealed value with bad signature {token!r}")
            return None
        return payload.decode("utf-8", errors="replace")

    def _signature(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()
