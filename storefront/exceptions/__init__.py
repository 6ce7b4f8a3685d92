"""Custom exceptions for the storefront order engine."""

class StorefrontError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.message
        return rv

class ValidationError(StorefrontError):
    """Missing or malformed request data, unknown enum values."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class ConflictError(StorefrontError):
    """Raised on a uniqueness conflict that the caller may retry."""
    def __init__(self, message="Resource already exists", payload=None):
        super().__init__(message, 409, payload)

class UpstreamGatewayError(StorefrontError):
    """The payment gateway refused, failed or could not be verified."""
    def __init__(self, message, status_code=400, payload=None, retryable=False):
        if retryable:
            payload = dict(payload or (), retryable=True)
        super().__init__(message, status_code, payload)
        self.retryable = retryable

class PersistenceError(StorefrontError):
    """A database transaction failed and was rolled back."""
    def __init__(self, message="Database error"):
        super().__init__(message, 500)

class UnauthorizedError(StorefrontError):
    """Raised when the caller is not authenticated for an action."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)
