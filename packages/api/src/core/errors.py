# This project was developed with assistance from AI tools.
"""Domain exceptions shared by the casework services.

Validation and transition errors propagate to the caller so the HTTP layer
can surface them. Audit and notification helpers never raise these; they log
and carry on.
"""


class CaseworkError(Exception):
    """Base class for every domain error raised by the services."""

    code = "casework_error"


class ValidationError(CaseworkError):
    """Bad input shape: missing field, wrong format, threshold violated."""

    code = "validation_failed"


class InvalidTransitionError(CaseworkError, ValueError):
    """Raised when an application status transition is not allowed."""

    code = "invalid_transition"


class AuthorizationError(CaseworkError):
    """The acting user lacks the role required for the action."""

    code = "not_authorized"


class UnknownActionError(CaseworkError):
    """No rate limit policy is configured for the requested action."""

    code = "unknown_action"


class RateLimitExceededError(CaseworkError):
    """The caller exhausted its submissions for the current window."""

    code = "rate_limit_exceeded"

    def __init__(self, action: str, method: str, max_count: int, period_hours: int):
        self.action = action
        self.method = method
        self.max_count = max_count
        self.period_hours = period_hours
        super().__init__(
            f"Rate limit exceeded for {action} ({method}): "
            f"maximum {max_count} submissions per {period_hours} hours"
        )


class StorageError(CaseworkError):
    """The blob store failed to write, read or delete an object."""

    code = "storage_unavailable"


class DeliveryError(CaseworkError):
    """The mail transport failed to deliver a notification."""

    code = "delivery_failed"
