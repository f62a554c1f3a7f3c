"""Custom exceptions for the ops console application."""


class OpsError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(OpsError):
    """Raised when a request payload is rejected before any write."""
    def __init__(self, message, field=None):
        super().__init__(message, 400, {'field': field} if field else None)
        self.field = field


class NotFoundError(OpsError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(OpsError):
    """Raised when a write collides with a uniqueness rule."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class ConfigurationError(OpsError):
    """QuickBooks is not connected, or its token can no longer be used."""
    def __init__(self, message="QuickBooks not configured. Connect QuickBooks or set QUICKBOOKS_REALM_ID and QUICKBOOKS_ACCESS_TOKEN."):
        super().__init__(message, 401)


class UpstreamError(OpsError):
    """Raised for network failures and non-2xx responses from QuickBooks."""
    def __init__(self, message, upstream_status=None, upstream_body=None):
        payload = {}
        if upstream_status is not None:
            payload['upstreamStatus'] = upstream_status
        super().__init__(message, 502, payload)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class PartialSyncError(OpsError):
    """A single estimate failed during a bulk pull."""
    def __init__(self, estimate_id, message):
        super().__init__(message, 502, {'estimateId': estimate_id})
        self.estimate_id = estimate_id

    def __str__(self):
        return f"Estimate {self.estimate_id}: {self.message}"
