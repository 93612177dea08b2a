"""
Permit document proxy.

Fetches permit PDFs from the portal through the cache and repairs the
transport defects the portal is known for: compressions the local stack
cannot decode, stray bytes before the ``%PDF`` header and 200 responses
carrying a near-empty placeholder instead of the file.
"""

from __future__ import annotations

import hashlib
from typing import List, Optional, Tuple, TYPE_CHECKING

import httpx
from pydantic import HttpUrl, TypeAdapter, ValidationError

from shared.config import PortalSettings
from shared.errors import PayloadTooSmallError, UpstreamUnavailableError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, call_with_retry

from service_portal.app.caching.cache_store import CacheStore
from service_portal.app.domain.records import NotAvailable, PdfPayload, PermitResult

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


PDF_SIGNATURE = b"%PDF"

# (strategy, Accept-Encoding), tried in order
ENCODING_STRATEGIES: List[Tuple[str, str]] = [
    ("compressed", "gzip, deflate"),
    ("identity", "identity"),
]

_URL_ADAPTER = TypeAdapter(HttpUrl)


def is_valid_url(url: Optional[str]) -> bool:
    """True for absolute http(s) URLs."""
    if not url or not url.strip():
        return False
    try:
        _URL_ADAPTER.validate_python(url.strip())
    except ValidationError:
        return False
    return True


def strip_leading_garbage(content: bytes, window: int = 20) -> bytes:
    """Drop bytes before the PDF signature when it starts inside ``window``.

    A signature at offset 0, at or past ``window``, or missing altogether
    leaves the content untouched.
    """
    index = content.find(PDF_SIGNATURE, 0, window + len(PDF_SIGNATURE) - 1)
    if index > 0:
        return content[index:]
    return content


class PermitProxy:
    """Cached, defect-tolerant fetch of permit PDFs."""

    def __init__(
        self,
        settings: PortalSettings,
        cache: CacheStore,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("portal.permit_proxy")
        self.retry_config = RetryConfig.fixed(settings.pdf_retries, settings.backoff_seconds)

        if not settings.has_api_key:
            self.logger.error("PORTAL_API is missing; permit documents will not be fetched")

    def build_permit_url(self, filename: Optional[str]) -> Optional[str]:
        """
        Full viewer URL for a permit filename from the portal API.

        Only spaces are encoded. The portal stores names with literal
        parentheses and commas (``file_compressed_(1).pdf``) and does not
        match their percent-encoded forms.
        """
        filename = (filename or "").strip()
        if not filename:
            return None

        base = self.settings.permit_base_url.rstrip("/")
        return f"{base}/{filename.replace(' ', '%20')}"

    async def fetch_document(self, url: str) -> PermitResult:
        """Return the document bytes or a NotAvailable carrying ``url``."""
        url = (url or "").strip()
        if not is_valid_url(url):
            self.logger.warning("Rejected permit URL", url=url)
            if url:
                return await self._fail(url, self.cache_key(url), "invalid_url")
            return self._not_available(url, "invalid_url")

        key = self.cache_key(url)
        try:
            return await self._fetch_through_cache(url, key)
        except Exception as exc:
            self.logger.error("Permit proxy failure", url=url, error=str(exc), exc_info=True)
            return await self._fail(url, key, "internal_error")

    @staticmethod
    def cache_key(url: str) -> str:
        return f"portal:permit_pdf:{hashlib.md5(url.encode('utf-8')).hexdigest()}"

    async def _fetch_through_cache(self, url: str, key: str) -> PermitResult:
        cached = await self.cache.get(key)
        if cached is not None:
            self._record("hit")
            content = cached if isinstance(cached, bytes) else cached.encode("latin-1")
            return PdfPayload(content=content)

        if not self.settings.has_api_key:
            return await self._fail(url, key, "missing_api_key")

        content = await self._download(url)
        if content is None:
            return await self._fail(url, key, "upstream_failed")

        content = strip_leading_garbage(content, self.settings.pdf_signature_window)
        try:
            self._check_size(content)
        except PayloadTooSmallError as exc:
            self.logger.warning("Permit payload too small", url=url, **exc.details)
            return await self._fail(url, key, "payload_too_small")

        await self.cache.set(key, content, self.settings.cache_ttl_seconds)
        self._record("fetched")
        return PdfPayload(content=content)

    async def _download(self, url: str) -> Optional[bytes]:
        """Try each encoding strategy in order; None when all fail."""
        for strategy, accept_encoding in ENCODING_STRATEGIES:
            try:
                return await call_with_retry(
                    self._request,
                    url,
                    accept_encoding,
                    exceptions=(httpx.RequestError, UpstreamUnavailableError),
                    config=self.retry_config,
                    name=f"permit_{strategy}",
                )
            except RetryError as exc:
                last = exc.last_exception
                self.logger.warning(
                    "Permit fetch attempt failed",
                    url=url,
                    strategy=strategy,
                    accept_encoding=accept_encoding,
                    status_code=getattr(last, "status_code", None),
                    error=str(last),
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                self.logger.warning(
                    "Permit fetch attempt failed",
                    url=url,
                    strategy=strategy,
                    accept_encoding=accept_encoding,
                    status_code=None,
                    error=str(exc),
                )
        return None

    async def _request(self, url: str, accept_encoding: str) -> bytes:
        headers = {
            "PORTAL-API": self.settings.api_key,
            "Accept": "application/pdf, */*",
            "Accept-Encoding": accept_encoding,
        }
        async with httpx.AsyncClient(timeout=self.settings.timeout_seconds) as client:
            response = await client.get(url, headers=headers)

        if not response.is_success:
            raise UpstreamUnavailableError(
                f"Permit document returned {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    def _check_size(self, content: bytes) -> None:
        if len(content) < self.settings.pdf_min_bytes:
            raise PayloadTooSmallError(len(content), self.settings.pdf_min_bytes)

    async def _fail(self, url: str, key: str, reason: str) -> NotAvailable:
        """Purge any entry for ``key`` so a failed fetch never lingers."""
        try:
            await self.cache.delete(key)
        except Exception as exc:
            self.logger.error("Cache purge failed", key=key, error=str(exc))
        return self._not_available(url, reason)

    def _not_available(self, url: str, reason: str) -> NotAvailable:
        self._record(reason)
        return NotAvailable(url=url, reason=reason)

    def _record(self, result: str) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter("permit_fetch_total", result=result)
        except Exception as exc:  # pragma: no cover - metrics failures never break fetches
            self.logger.debug("Failed to record permit metrics", error=str(exc))
