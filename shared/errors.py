"""
Shared error handling for the Portal Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for Access Layer services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class UpstreamUnavailableError(AccessLayerException):
    """Non-2xx status or transport failure talking to the portal."""

    def __init__(self, message: str = "Upstream unavailable", status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class PayloadTooSmallError(AccessLayerException):
    """Document body below the plausibility floor."""

    def __init__(self, size: int, minimum: int, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.update({"size": size, "minimum": minimum})
        super().__init__("PAYLOAD_TOO_SMALL", f"Payload of {size} bytes is below {minimum} bytes", details)


class DocumentNotAvailableError(AccessLayerException):
    """Permit document could not be served; carries the original URL."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            "DOCUMENT_NOT_AVAILABLE",
            "Permit document is not available",
            {"url": url, "reason": reason},
        )
