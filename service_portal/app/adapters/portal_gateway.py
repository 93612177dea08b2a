"""
Portal directory gateway.

Read-through cached access to the portal's institution and program
listings. Every public call resolves to a (possibly empty) list; upstream
failures, malformed bodies and a missing API key never reach the caller.
"""

from __future__ import annotations

import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import quote

import httpx

from shared.config import PortalSettings
from shared.errors import UpstreamUnavailableError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, call_with_retry

from service_portal.app.caching.cache_store import CacheStore
from service_portal.app.domain.records import (
    HeiRecord,
    ProgramRecord,
    normalize_payload,
    sort_institutions,
    unique_texts,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


RETRYABLE_ERRORS = (httpx.RequestError, UpstreamUnavailableError)


class PortalGateway:
    """Normalized, cached queries over the portal directory API."""

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
        self.logger = get_logger("portal.gateway")
        self.retry_config = RetryConfig.fixed(settings.retries, settings.backoff_seconds)

        if not settings.has_api_key:
            self.logger.error("PORTAL_API is missing; portal lookups will return empty results")

    async def fetch_all_institutions(self) -> List[HeiRecord]:
        """All HEIs with a code and a name, in natural name order."""

        async def _build() -> Optional[List[Dict[str, Any]]]:
            rows = await self._get_institution_rows()
            if rows is None:
                return None
            records = (HeiRecord.from_row(row) for row in rows)
            return [record.to_dict() for record in sort_institutions(r for r in records if r)]

        payload = await self._remember(self._cache_key("institutions"), "institutions", _build)
        return [HeiRecord.from_dict(item) for item in payload or [] if isinstance(item, dict)]

    async def fetch_program_records(self, inst_code: str) -> List[ProgramRecord]:
        """Raw program rows for an institution; extra fields pass through."""
        inst_code = (inst_code or "").strip()
        if not inst_code:
            return []

        async def _build() -> Optional[List[Dict[str, Any]]]:
            records = await self._load_program_records(inst_code)
            if records is None:
                return None
            return [record.to_dict() for record in records]

        payload = await self._remember(
            self._cache_key("program_records", inst_code), "program_records", _build
        )
        return ProgramRecord.from_rows(payload or [])

    async def fetch_programs(self, inst_code: str) -> List[str]:
        """Distinct program names offered by an institution."""
        inst_code = (inst_code or "").strip()
        if not inst_code:
            return []

        async def _build() -> Optional[List[str]]:
            records = await self._load_program_records(inst_code)
            if records is None:
                return None
            return unique_texts(record.program_name for record in records)

        payload = await self._remember(self._cache_key("programs", inst_code), "programs", _build)
        return [str(name) for name in payload or []]

    async def fetch_majors(self, inst_code: str, program_name: str) -> List[str]:
        """Distinct majors of one program; program names match exactly after trimming."""
        inst_code = (inst_code or "").strip()
        program_name = (program_name or "").strip()
        if not inst_code or not program_name:
            return []

        async def _build() -> Optional[List[str]]:
            records = await self._load_program_records(inst_code)
            if records is None:
                return None
            return unique_texts(
                record.major_name for record in records if record.program_name == program_name
            )

        payload = await self._remember(
            self._cache_key("program_majors", inst_code, program_name), "program_majors", _build
        )
        return [str(name) for name in payload or []]

    async def forget_institutions(self) -> None:
        await self.cache.delete(self._cache_key("institutions"))

    async def forget_program_records(self, inst_code: str) -> None:
        await self.cache.delete(self._cache_key("program_records", inst_code.strip()))

    async def forget_programs(self, inst_code: str) -> None:
        await self.cache.delete(self._cache_key("programs", inst_code.strip()))

    async def forget_majors(self, inst_code: str, program_name: str) -> None:
        await self.cache.delete(
            self._cache_key("program_majors", inst_code.strip(), program_name.strip())
        )

    async def _remember(
        self,
        key: str,
        cache_type: str,
        build: Callable[[], Awaitable[Optional[List[Any]]]],
    ) -> Optional[List[Any]]:
        """Return the cached list for ``key`` or build and cache it.

        A None from ``build`` is a failed fetch and is never cached, so the
        next call goes upstream again.
        """
        cached = await self._read_cache(key, cache_type)
        if cached is not None:
            return cached

        value = await build()
        if value is None:
            return None

        await self._write_cache(key, value)
        return value

    async def _load_program_records(self, inst_code: str) -> Optional[List[ProgramRecord]]:
        rows = await self._post_program_rows(inst_code)
        if rows is None:
            return None
        return ProgramRecord.from_rows(rows)

    async def _get_institution_rows(self) -> Optional[List[Any]]:
        if not self.settings.has_api_key:
            return None

        url = self.settings.endpoint(self.settings.institutions_path)
        return await self._fetch_rows("institutions", "GET", url, headers=self._headers())

    async def _post_program_rows(self, inst_code: str) -> Optional[List[Any]]:
        if not self.settings.has_api_key:
            return None

        url = self.settings.endpoint(self.settings.programs_path)
        return await self._fetch_rows(
            "programs", "POST", url, headers=self._headers(), data={"instCode": inst_code}
        )

    async def _fetch_rows(self, endpoint: str, method: str, url: str, **kwargs) -> Optional[List[Any]]:
        """Call the portal with retries and normalize the body into rows."""

        async def _request() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.settings.timeout_seconds) as client:
                if method == "POST":
                    response = await client.post(url, **kwargs)
                else:
                    response = await client.get(url, **kwargs)

            if not response.is_success:
                raise UpstreamUnavailableError(
                    f"Portal {endpoint} returned {response.status_code}",
                    status_code=response.status_code,
                )
            return response

        start = time.perf_counter()
        try:
            response = await call_with_retry(
                _request,
                exceptions=RETRYABLE_ERRORS,
                config=self.retry_config,
                name=f"portal_{endpoint}",
            )
        except RetryError as exc:
            self.logger.warning(
                "Portal request failed",
                endpoint=endpoint,
                url=url,
                attempts=exc.attempts,
                error=str(exc.last_exception),
            )
            self._record_upstream(endpoint, "unavailable", start)
            return None
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self.logger.warning("Portal request error", endpoint=endpoint, url=url, error=str(exc))
            self._record_upstream(endpoint, "unavailable", start)
            return None

        rows = normalize_payload(self._decode_body(response))
        if rows is None:
            self.logger.warning(
                "Portal returned malformed payload",
                endpoint=endpoint,
                url=url,
                body=response.text[:200],
            )
            self._record_upstream(endpoint, "malformed", start)
            return None

        self.logger.debug("Portal rows retrieved", endpoint=endpoint, rows=len(rows))
        self._record_upstream(endpoint, "ok", start)
        return rows

    @staticmethod
    def _decode_body(response: httpx.Response) -> Any:
        """Decoded JSON, or the raw text when the body is not JSON."""
        try:
            return response.json()
        except ValueError:
            return response.text

    def _headers(self) -> Dict[str, str]:
        return {
            "PORTAL-API": self.settings.api_key,
            "Accept": "application/json",
        }

    async def _read_cache(self, key: str, cache_type: str) -> Optional[List[Any]]:
        """Read a cached list; unreadable entries count as a miss."""
        try:
            value = await self.cache.get(key)
        except Exception as exc:
            self.logger.error("Cache read failed", key=key, error=str(exc))
            return None

        if value is None:
            self._record_cache(cache_type, hit=False)
            return None

        try:
            payload = json.loads(value)
        except (TypeError, ValueError):
            payload = None

        if not isinstance(payload, list):
            self.logger.warning("Discarding malformed cache payload", key=key)
            self._record_cache(cache_type, hit=False)
            return None

        self._record_cache(cache_type, hit=True)
        return payload

    async def _write_cache(self, key: str, value: List[Any]) -> None:
        try:
            await self.cache.set(key, json.dumps(value), self.settings.cache_ttl_seconds)
        except Exception as exc:
            self.logger.error("Cache write failed", key=key, error=str(exc))

    @staticmethod
    def _cache_key(namespace: str, *parts: str) -> str:
        # ":" inside a part is encoded so keys stay unambiguous
        return ":".join(["portal", namespace, *(quote(part, safe="") for part in parts)])

    def _record_cache(self, cache_type: str, *, hit: bool) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.record_cache_access(cache_type, hit)
        except Exception as exc:  # pragma: no cover - metrics failures never break lookups
            self.logger.debug("Failed to record cache metrics", error=str(exc))

    def _record_upstream(self, endpoint: str, outcome: str, start: float) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter("upstream_requests_total", endpoint=endpoint, outcome=outcome)
            self.metrics.observe_histogram(
                "upstream_request_duration_seconds", time.perf_counter() - start, endpoint=endpoint
            )
        except Exception as exc:  # pragma: no cover - metrics failures never break lookups
            self.logger.debug("Failed to record upstream metrics", error=str(exc))
