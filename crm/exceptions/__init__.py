"""Custom exceptions for the CRM application."""

class CrmError(Exception):
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

class BusinessLogicError(CrmError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """Raised when submitted data fails validation (per-field errors in payload)."""
    def __init__(self, message="Invalid data", errors=None):
        self.errors = errors or []
        super().__init__(message, status_code=400, payload={'errors': self.errors})

class NotFoundError(CrmError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(CrmError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)
