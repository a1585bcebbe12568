"""Client-facing links for certificates.

The engine stores identifiers only; artifact rendering and storage belong to the
file service behind ``frontend_url``. Download links carry an expiry and an
HMAC so that service can check them without calling back here.
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote, urlencode

from app.Core.config import get_settings


class UrlSigner:
    def __init__(self, base_url: str, secret: str, ttl_seconds: int = 900) -> None:
        self.base_url = base_url.rstrip("/")
        self._secret = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def download_url(self, certificate_id: str, now: datetime) -> str:
        path = f"/certificates/download/{quote(certificate_id)}"
        expires = int((now + timedelta(seconds=self.ttl_seconds)).timestamp())
        query = urlencode({"expires": expires, "signature": self._sign(path, expires)})
        return f"{self.base_url}{path}?{query}"

    def verify_download(self, url_path: str, expires: int, signature: str, now: datetime) -> bool:
        if int(now.timestamp()) > int(expires):
            return False
        return hmac.compare_digest(self._sign(url_path, int(expires)), signature)

    def verification_url(self, verification_code: str) -> str:
        return f"{self.base_url}/certificates/verify/{quote(verification_code)}"


_signer: Optional[UrlSigner] = None


def get_url_signer() -> UrlSigner:
    global _signer
    if _signer is None:
        settings = get_settings()
        _signer = UrlSigner(settings.frontend_url, settings.url_signing_secret, settings.download_link_ttl_seconds)
    return _signer


__all__ = ["UrlSigner", "get_url_signer"]
