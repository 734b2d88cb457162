"""
Domain error taxonomy shared by services and the HTTP layer
"""


class DomainError(Exception):
    """Base class for errors the engine raises on purpose"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Bad input: missing tenant, non-positive quantity, insufficient stock, expired batch"""
    status_code = 400


class NotFoundError(DomainError):
    """Order, batch, draft or product absent"""
    status_code = 404


class ConflictError(DomainError):
    """Illegal state transition"""
    status_code = 409


class NotificationFailure(DomainError):
    """Webhook / SMS / email send failure. Caught at the notification boundary."""
    status_code = 502


class TransactionFailure(DomainError):
    """Database-level failure that survived the bounded retry"""
    status_code = 503


class OrderNumberExhausted(TransactionFailure):
    """Every order number candidate collided"""
