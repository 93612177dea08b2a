"""
Portal Access Service package.

The service fronts the third-party portal for the registry:
- Directory lookups: institutions, programs and majors, cached per query shape
- Permit documents: cached PDF proxy with transport repairs

Structure:
- app.main: FastAPI app, routes, and wiring.
- app.adapters: Portal gateway and permit proxy.
- app.caching: Cache store interface, Redis and in-memory stores.
- app.domain: Records built from portal responses.
"""
