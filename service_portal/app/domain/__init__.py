"""
Domain records for the portal access layer.
"""

from .records import (
    HeiRecord,
    NotAvailable,
    PdfPayload,
    PermitResult,
    ProgramRecord,
    normalize_payload,
)

__all__ = [
    "HeiRecord",
    "NotAvailable",
    "PdfPayload",
    "PermitResult",
    "ProgramRecord",
    "normalize_payload",
]
