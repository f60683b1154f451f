"""Signed, self-contained session tokens.

Token layout on the wire::

    v1.<base64url(payload_json)>.<base64url(hmac_sha256(payload_b64))>

Both segments are unpadded base64url. The payload is the canonical compact
JSON object ``{"exp": <unix seconds>, "u": <username>}``. The server keeps no
session store; a token is valid until ``exp`` and is discarded client-side at
logout.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
import hashlib
import hmac
import json

from pdf_tools_api.settings import SESSION_TTL_SECONDS

SESSION_COOKIE_NAME = "pdf_tools_session"
_TOKEN_VERSION = "v1"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(f"{value}{padding}")


def _unix_seconds(now: datetime | int | None) -> int:
    if now is None:
        now = datetime.now(timezone.utc)
    if isinstance(now, datetime):
        return int(now.timestamp())
    return int(now)


class SessionSigner:
    def __init__(self, key: bytes | str, *, ttl_seconds: int = SESSION_TTL_SECONDS) -> None:
        if isinstance(key, str):
            key = key.encode("utf-8")
        if not key:
            raise ValueError("session signing key must be non-empty")
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        self._key = key
        self.ttl_seconds = ttl_seconds

    def _sign(self, payload_b64: str) -> str:
        digest = hmac.new(self._key, payload_b64.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def issue(self, username: str, now: datetime | int | None = None) -> str:
        payload = {"u": username, "exp": _unix_seconds(now) + self.ttl_seconds}
        payload_bytes = json.dumps(
            payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")
        payload_b64 = _b64url_encode(payload_bytes)
        return f"{_TOKEN_VERSION}.{payload_b64}.{self._sign(payload_b64)}"

    def verify(self, token: str, now: datetime | int | None = None) -> str | None:
        """Return the username carried by ``token`` or ``None`` if it is not trusted."""
        parts = token.split(".")
        if len(parts) != 3:
            return None
        version, payload_b64, signature_b64 = parts
        if version != _TOKEN_VERSION:
            return None
        try:
            expected_signature = self._sign(payload_b64)
        except UnicodeEncodeError:
            return None
        # Compared in encoded form: a signature segment that only differs in
        # base64 padding bits decodes to the same bytes but is still rejected.
        if not hmac.compare_digest(
            expected_signature.encode("ascii"),
            signature_b64.encode("utf-8", errors="replace"),
        ):
            return None

        try:
            payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
        except (binascii.Error, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        username = payload.get("u")
        expires_at = payload.get("exp")
        if not isinstance(username, str) or isinstance(expires_at, bool):
            return None
        if not isinstance(expires_at, int):
            return None
        if _unix_seconds(now) >= expires_at:
            return None
        return username
