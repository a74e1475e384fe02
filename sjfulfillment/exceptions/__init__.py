"""Custom exceptions for the fulfillment stock ledger."""


class FulfillmentError(Exception):
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


class ValidationError(FulfillmentError):
    """Raised for malformed or missing input."""
    def __init__(self, errors, payload=None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        message = f"Invalid input data: {', '.join(self.errors)}"
        super().__init__(message, 400, dict(payload or (), errors=self.errors))


class BusinessLogicError(FulfillmentError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when a movement needs more units than are available."""
    def __init__(self, message="Insufficient available stock", requested=None, available=None):
        payload = None
        if requested is not None:
            payload = {'requested': requested, 'available': available}
        super().__init__(message, payload=payload)
        self.requested = requested
        self.available = available


class NegativeAvailableStockError(BusinessLogicError):
    """Raised when an adjustment would leave fewer units than are reserved."""
    def __init__(self, message="Adjustment would result in negative available stock"):
        super().__init__(message)


class NotFoundError(FulfillmentError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(FulfillmentError):
    """Raised when the caller could not be authenticated."""
    def __init__(self, message="Unauthorized"):
        super().__init__(message, 401)


class ForbiddenError(FulfillmentError):
    """Raised when the caller lacks permission for an action."""
    def __init__(self, message="Forbidden"):
        super().__init__(message, 403)


class RateLimitError(FulfillmentError):
    def __init__(self, message="Rate limit exceeded"):
        super().__init__(message, 429)


class NoWarehouseAvailableError(FulfillmentError):
    """Raised when no warehouse exists and the default one cannot be created."""
    def __init__(self, message="No warehouse available"):
        super().__init__(message, 500)
