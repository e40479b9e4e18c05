# Custom exceptions


class BillingError(Exception):
    """Base exception for billing engine errors"""

    def __init__(self, message: str, guard: str = None):
        super().__init__(message)
        self.message = message
        self.guard = guard

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "guard": self.guard,
        }


class ValidationError(BillingError):
    """Raised when input is malformed (negative consumption, missing field)"""

    pass


class PreconditionError(BillingError):
    """Raised when an action targets a bill that does not exist or cannot accept it"""

    pass


class InvalidStateError(PreconditionError):
    """Raised when a transition is attempted from the wrong payment status"""

    def __init__(self, message: str, current_status: str = None, guard: str = None):
        super().__init__(message, guard=guard)
        self.current_status = current_status


class NotFoundError(BillingError):
    """Raised when a tenant, bill or rate configuration is absent"""

    pass


class TransientError(BillingError):
    """Raised when the datastore is unavailable; callers own the retry policy"""

    pass
