"""
Unit tests for the permit PDF proxy.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from service_portal.app.adapters.permit_proxy import PermitProxy, is_valid_url, strip_leading_garbage
from service_portal.app.caching.cache_store import MemoryCacheStore
from service_portal.app.domain.records import NotAvailable, PdfPayload
from shared.config import PortalSettings
from shared.test_helpers import TestDataFactory, install_async_client, raw_response


PERMIT_URL = "https://portal.test/govt_auth/view_file/GR-2012-041_(1).pdf"


@pytest.fixture
def settings():
    return PortalSettings(api_key="secret-key", backoff_ms=0)


@pytest.fixture
def cache():
    return MemoryCacheStore()


@pytest.fixture
def proxy(settings, cache):
    return PermitProxy(settings, cache)


def _encodings(inner):
    return [call.kwargs["headers"]["Accept-Encoding"] for call in inner.get.await_args_list]


class TestSignatureRepair:
    """Test cases for strip_leading_garbage."""

    def test_strips_leading_null_bytes(self):
        body = TestDataFactory.create_pdf_bytes()
        assert strip_leading_garbage(b"\x00\x00\x00" + body) == body

    def test_signature_at_offset_zero_is_untouched(self):
        body = TestDataFactory.create_pdf_bytes()
        assert strip_leading_garbage(body) is body

    def test_last_offset_inside_window_is_stripped(self):
        body = TestDataFactory.create_pdf_bytes()
        assert strip_leading_garbage(b" " * 19 + body) == body

    def test_offset_at_window_edge_is_not_stripped(self):
        body = b" " * 20 + TestDataFactory.create_pdf_bytes()
        assert strip_leading_garbage(body) == body

    def test_offset_past_window_is_not_stripped(self):
        body = b"x" * 25 + TestDataFactory.create_pdf_bytes()
        assert strip_leading_garbage(body) == body

    def test_missing_signature_is_untouched(self):
        body = b"<html>not a pdf</html>" * 10
        assert strip_leading_garbage(body) == body


class TestUrlValidation:
    """Test cases for is_valid_url."""

    @pytest.mark.parametrize("url", [
        "https://portal.test/view_file/a.pdf",
        "http://portal.test/view_file/file_compressed_(1).pdf",
    ])
    def test_absolute_urls_are_valid(self, url):
        assert is_valid_url(url)

    @pytest.mark.parametrize("url", ["", "   ", None, "not a url", "/relative/path.pdf", "ftp://host/a.pdf"])
    def test_other_values_are_invalid(self, url):
        assert not is_valid_url(url)


class TestFetchDocument:
    """Test cases for PermitProxy.fetch_document."""

    @pytest.mark.asyncio
    async def test_success_repairs_caches_and_returns_payload(self, proxy, cache):
        body = TestDataFactory.create_pdf_bytes()
        with patch("httpx.AsyncClient") as mock_client:
            inner = install_async_client(mock_client, get=raw_response(b"\x00\x00\x00" + body))
            result = await proxy.fetch_document(PERMIT_URL)

        assert isinstance(result, PdfPayload)
        assert result.content == body
        assert result.size == len(body)
        assert await cache.get(proxy.cache_key(PERMIT_URL)) == body

        args, kwargs = inner.get.await_args
        assert args[0] == PERMIT_URL
        assert kwargs["headers"] == {
            "PORTAL-API": "secret-key",
            "Accept": "application/pdf, */*",
            "Accept-Encoding": "gzip, deflate",
        }

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, proxy, cache):
        await cache.set(proxy.cache_key(PERMIT_URL), b"cached bytes", 600)

        with patch("httpx.AsyncClient") as mock_client:
            result = await proxy.fetch_document(PERMIT_URL)

        mock_client.assert_not_called()
        assert result == PdfPayload(content=b"cached bytes")

    def test_cache_key_is_hashed(self, proxy):
        key = proxy.cache_key(PERMIT_URL)
        assert key.startswith("portal:permit_pdf:")
        assert PERMIT_URL not in key
        assert key == proxy.cache_key(PERMIT_URL)

    @pytest.mark.asyncio
    async def test_falls_back_to_identity_encoding(self, proxy):
        body = TestDataFactory.create_pdf_bytes()
        with patch("httpx.AsyncClient") as mock_client:
            inner = install_async_client(mock_client, get=[
                raw_response(b"", status_code=500),
                httpx.DecodingError("zstd not supported"),
                raw_response(body),
            ])
            result = await proxy.fetch_document(PERMIT_URL)

        assert isinstance(result, PdfPayload)
        assert _encodings(inner) == ["gzip, deflate", "gzip, deflate", "identity"]

    @pytest.mark.asyncio
    async def test_gives_up_after_identity_attempt(self, proxy, cache):
        with patch("httpx.AsyncClient") as mock_client:
            inner = install_async_client(mock_client, get=raw_response(b"", status_code=502))
            result = await proxy.fetch_document(PERMIT_URL)

        assert result == NotAvailable(url=PERMIT_URL, reason="upstream_failed")
        # two attempts per strategy, two strategies, never a third strategy
        assert _encodings(inner) == ["gzip, deflate", "gzip, deflate", "identity", "identity"]

    @pytest.mark.asyncio
    async def test_single_attempt_per_strategy(self, cache):
        proxy = PermitProxy(PortalSettings(api_key="k", backoff_ms=0, pdf_retries=1), cache)
        with patch("httpx.AsyncClient") as mock_client:
            inner = install_async_client(mock_client, get=httpx.ConnectError("refused"))
            result = await proxy.fetch_document(PERMIT_URL)

        assert isinstance(result, NotAvailable)
        assert _encodings(inner) == ["gzip, deflate", "identity"]

    @pytest.mark.asyncio
    async def test_tiny_body_is_not_available(self, proxy, cache):
        with patch("httpx.AsyncClient") as mock_client:
            install_async_client(mock_client, get=raw_response(b" "))
            result = await proxy.fetch_document(PERMIT_URL)

        assert result == NotAvailable(url=PERMIT_URL, reason="payload_too_small")
        assert proxy.cache_key(PERMIT_URL) not in cache

    @pytest.mark.asyncio
    async def test_failure_purges_existing_entry(self, proxy):
        cache = AsyncMock()
        cache.get.return_value = None
        proxy.cache = cache

        with patch("httpx.AsyncClient") as mock_client:
            install_async_client(mock_client, get=raw_response(b"x"))
            result = await proxy.fetch_document(PERMIT_URL)

        assert isinstance(result, NotAvailable)
        cache.delete.assert_awaited_once_with(proxy.cache_key(PERMIT_URL))
        cache.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_url_is_rejected_before_network(self, proxy):
        with patch("httpx.AsyncClient") as mock_client:
            result = await proxy.fetch_document("not-a-url")

        mock_client.assert_not_called()
        assert result == NotAvailable(url="not-a-url", reason="invalid_url")

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_is_stripped_before_fetch(self, proxy, cache):
        body = TestDataFactory.create_pdf_bytes()
        with patch("httpx.AsyncClient") as mock_client:
            inner = install_async_client(mock_client, get=raw_response(body))
            result = await proxy.fetch_document(f"  {PERMIT_URL}\n")

        assert result == PdfPayload(content=body)
        assert inner.get.await_args.args[0] == PERMIT_URL
        assert await cache.get(proxy.cache_key(PERMIT_URL)) == body

    @pytest.mark.asyncio
    async def test_missing_api_key_is_not_available(self, cache):
        proxy = PermitProxy(PortalSettings(api_key=""), cache)
        with patch("httpx.AsyncClient") as mock_client:
            result = await proxy.fetch_document(PERMIT_URL)

        mock_client.assert_not_called()
        assert result.reason == "missing_api_key"

    @pytest.mark.asyncio
    async def test_cache_outage_is_converted_to_not_available(self, proxy):
        proxy.cache = AsyncMock()
        proxy.cache.get.side_effect = ConnectionError("redis down")
        proxy.cache.delete.side_effect = ConnectionError("redis down")

        result = await proxy.fetch_document(PERMIT_URL)

        assert result == NotAvailable(url=PERMIT_URL, reason="internal_error")

    @pytest.mark.asyncio
    async def test_body_without_signature_is_served_unchanged(self, proxy):
        body = b"%%not-quite-a-pdf%%" + b"1" * 200
        with patch("httpx.AsyncClient") as mock_client:
            install_async_client(mock_client, get=raw_response(body))
            result = await proxy.fetch_document(PERMIT_URL)

        assert result == PdfPayload(content=body)


class TestBuildPermitUrl:
    """Test cases for PermitProxy.build_permit_url."""

    def test_only_spaces_are_encoded(self, cache):
        proxy = PermitProxy(PortalSettings(api_key="k", permit_base_url="https://portal.test/view_file/"), cache)

        url = proxy.build_permit_url(" GR 2012-041 file_compressed_(1),a.pdf ")

        assert url == "https://portal.test/view_file/GR%202012-041%20file_compressed_(1),a.pdf"

    @pytest.mark.parametrize("filename", [None, "", "   "])
    def test_blank_filename_has_no_url(self, proxy, filename):
        assert proxy.build_permit_url(filename) is None
