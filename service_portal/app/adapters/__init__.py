"""
Adapters package for the Portal Service.

Contains the HTTP-facing components that talk to the upstream portal:

- PortalGateway: cached institution/program directory lookups
- PermitProxy: cached permit PDF fetches with transport repairs

Both are fail-soft: callers get empty lists or NotAvailable, never
exceptions for upstream trouble.
"""

from .portal_gateway import PortalGateway
from .permit_proxy import PermitProxy

__all__ = [
    "PortalGateway",
    "PermitProxy",
]
