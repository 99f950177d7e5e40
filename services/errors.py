# services/errors.py

"""
Error kinds raised by the order/payout core.

Controllers never build error responses by hand: every MarketplaceError is
turned into ``{"success": false, "error": <code>, "message": ...}`` by the
handler registered in ``create_app``.
"""


class MarketplaceError(Exception):
    code = "ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message=None, **details):
        self.message = message or self.__class__.__name__
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        body = {
            'success': False,
            'error': self.code,
            'message': self.message,
        }
        if self.details:
            body['details'] = self.details
        if self.retryable:
            body['retryable'] = True
        return body


class ValidationError(MarketplaceError):
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFound(MarketplaceError):
    code = "NOT_FOUND"
    http_status = 404


class MenuItemNotFound(NotFound):
    code = "MENU_ITEM_NOT_FOUND"


class Forbidden(MarketplaceError):
    code = "FORBIDDEN"
    http_status = 403


class Unauthenticated(MarketplaceError):
    code = "UNAUTHENTICATED"
    http_status = 401


class InvalidTransition(MarketplaceError):
    code = "INVALID_TRANSITION"
    http_status = 409


class AlreadyRated(MarketplaceError):
    code = "ALREADY_RATED"
    http_status = 409


class VendorClosed(MarketplaceError):
    code = "VENDOR_CLOSED"
    http_status = 409


class EmptyOrder(MarketplaceError):
    code = "EMPTY_ORDER"
    http_status = 400


class Conflict(MarketplaceError):
    """Lost an optimistic-concurrency race or hit an in-flight idempotency key."""
    code = "CONFLICT"
    http_status = 409
    retryable = True


class Transient(MarketplaceError):
    """Persistence or cache call failed or timed out; nothing was committed."""
    code = "TRANSIENT"
    http_status = 503
    retryable = True
