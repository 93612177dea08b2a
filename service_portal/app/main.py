"""
Portal access service for the institution registry.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Query
from fastapi.responses import JSONResponse, Response

from shared.base_service import BaseService
from shared.errors import DocumentNotAvailableError

from service_portal.app.adapters.permit_proxy import PermitProxy
from service_portal.app.adapters.portal_gateway import PortalGateway
from service_portal.app.caching.cache_store import CacheStore, create_cache_store
from service_portal.app.domain.records import NotAvailable


PDF_CACHE_CONTROL = "public, max-age=600"


class PortalService(BaseService):
    """HTTP surface over the portal gateway and the permit proxy."""

    def __init__(self, cache: Optional[CacheStore] = None):
        super().__init__("portal", 8000)
        self.cache = cache or create_cache_store(self.config)
        self.gateway = PortalGateway(self.config, self.cache, metrics=self.metrics)
        self.permit_proxy = PermitProxy(self.config, self.cache, metrics=self.metrics)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.cache.close()

        self._setup_directory_routes()
        self._setup_cache_routes()
        self._setup_permit_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.portal_service = self

    def _setup_directory_routes(self):
        """Institution, program and major lookups."""

        @self.app.get("/")
        async def root():
            return {
                "service": self.service_name,
                "message": "Portal Access Layer - Directory and Permit Proxy",
            }

        @self.app.get("/api/v1/institutions")
        async def list_institutions():
            """All institutions known to the portal, sorted by name."""
            records = await self.gateway.fetch_all_institutions()
            return {
                "institutions": [record.to_dict() for record in records],
                "count": len(records),
            }

        @self.app.get("/api/v1/institutions/{inst_code}/programs")
        async def list_programs(inst_code: str):
            programs = await self.gateway.fetch_programs(inst_code)
            return {"inst_code": inst_code.strip(), "programs": programs}

        @self.app.get("/api/v1/institutions/{inst_code}/program-records")
        async def list_program_records(inst_code: str):
            records = await self.gateway.fetch_program_records(inst_code)
            return {
                "inst_code": inst_code.strip(),
                "records": [record.to_dict() for record in records],
            }

        @self.app.get("/api/v1/institutions/{inst_code}/majors")
        async def list_majors(inst_code: str, program: str = Query(..., description="Exact program name")):
            majors = await self.gateway.fetch_majors(inst_code, program)
            return {"inst_code": inst_code.strip(), "program": program.strip(), "majors": majors}

    def _setup_cache_routes(self):
        """Manual invalidation; each route clears exactly one query shape."""

        @self.app.delete("/api/v1/cache/institutions")
        async def clear_institutions():
            await self.gateway.forget_institutions()
            return self._cleared("institutions")

        @self.app.delete("/api/v1/cache/institutions/{inst_code}/programs")
        async def clear_programs(inst_code: str):
            await self.gateway.forget_programs(inst_code)
            return self._cleared("programs", inst_code=inst_code.strip())

        @self.app.delete("/api/v1/cache/institutions/{inst_code}/program-records")
        async def clear_program_records(inst_code: str):
            await self.gateway.forget_program_records(inst_code)
            return self._cleared("program_records", inst_code=inst_code.strip())

        @self.app.delete("/api/v1/cache/institutions/{inst_code}/majors")
        async def clear_majors(inst_code: str, program: str = Query(...)):
            await self.gateway.forget_majors(inst_code, program)
            return self._cleared("program_majors", inst_code=inst_code.strip(), program=program.strip())

    def _setup_permit_routes(self):
        """Permit viewer links and the PDF proxy."""

        @self.app.get("/api/v1/permits/url")
        async def permit_url(filename: str = Query("")):
            url = self.permit_proxy.build_permit_url(filename)
            if url is None:
                raise HTTPException(status_code=404, detail="No permit file name given")
            return {"filename": filename.strip(), "url": url}

        @self.app.get("/api/v1/permits/proxy")
        async def proxy_permit(url: str = Query(..., description="Absolute permit document URL")):
            """Stream a permit PDF, or describe why it cannot be served."""
            result = await self.permit_proxy.fetch_document(url)

            if isinstance(result, NotAvailable):
                error = DocumentNotAvailableError(result.url, result.reason)
                status_code = 422 if result.reason == "invalid_url" else 502
                return JSONResponse(status_code=status_code, content=error.to_response().model_dump())

            return Response(
                content=result.content,
                media_type="application/pdf",
                headers={
                    "Content-Disposition": 'inline; filename="permit.pdf"',
                    "Content-Length": str(result.size),
                    "Cache-Control": PDF_CACHE_CONTROL,
                    "X-Content-Type-Options": "nosniff",
                },
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache": "ok" if await self.cache.ping() else "error",
            "portal_api_key": "ok" if self.config.has_api_key else "missing",
        }

    @staticmethod
    def _cleared(shape: str, **params: Any) -> Dict[str, Any]:
        return {"cleared": shape, **params}


def create_app(cache: Optional[CacheStore] = None):
    """Create FastAPI application."""
    service = PortalService(cache=cache)
    return service.app


if __name__ == "__main__":
    service = PortalService()
    service.run()
