# app/core/errors.py
"""
Failure kinds of the locate pipeline.

Stages raise these; only the handlers in app/api/errors.py turn them into
HTTP responses (status + {"error", "details"?, "retryAfter"?}).
"""
from typing import Optional, Dict, Any


class LocateError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidArgument(LocateError):
    status_code = 400
    message = "Invalid device id"


class Unauthenticated(LocateError):
    status_code = 401
    message = "Unauthorized"


class PermissionDenied(LocateError):
    status_code = 403
    message = "Access denied"


class NotFound(LocateError):
    status_code = 404
    message = "Device not found"


class KeysMissing(LocateError):
    status_code = 400
    message = "Device keys are invalid or missing"

    def __init__(self):
        super().__init__(details={
            "reason": "invalid_keys",
            "suggestion": "Edit the device and provide both the hashed advertisement key and the private key.",
        })


class ConfigurationError(LocateError):
    status_code = 500
    message = "Upstream API configuration not found"


class RateLimited(LocateError):
    status_code = 429

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Wait {retry_after} seconds before refreshing again")

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["retryAfter"] = self.retry_after
        return body


class UpstreamUnavailable(LocateError):
    """Upstream answered with an error status, or every attempt failed in transport."""
    message = "Error querying K-Tag API"

    def __init__(self, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        self.status_code = upstream_status if upstream_status and upstream_status >= 400 else 502
        reason = "invalid_credentials" if upstream_status == 401 else "communication_error"
        super().__init__(details={"reason": reason})


class NoObservation(LocateError):
    """Upstream was reachable but has no usable observation; rendered as HTTP 200, success=false."""
    status_code = 200
    message = "No location available"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, details={
            "reason": "no_reports",
            "suggestion": "The tag has not been seen by the network yet. Try again in a few minutes.",
        })

    def to_body(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "message": self.message,
            "details": self.details,
        }
