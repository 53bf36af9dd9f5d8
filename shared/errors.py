"""
Shared error handling for the Garage service layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GarageServiceException(Exception):
    """Base exception for Garage services."""

    status_code = 400

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


class AuthenticationError(GarageServiceException):
    """Missing or unusable caller identity."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ValidationError(GarageServiceException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(GarageServiceException):
    """Requested entity does not exist for the caller's team."""

    status_code = 404

    def __init__(self, entity: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message or f"{entity} not found", details)


class CacheConfigurationError(GarageServiceException):
    """Cache store configuration is unusable."""

    status_code = 500

    def __init__(self, message: str = "Cache misconfigured", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_CONFIGURATION_ERROR", message, details)
