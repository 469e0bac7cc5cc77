"""
Error taxonomy for the assignment engine and its handlers.
"""


class ReviewExchangeError(Exception):
    """Base error. status_code maps the error onto an API response."""
    status_code = 500
    retryable = False


class ValidationError(ReviewExchangeError):
    """Bad input shape or range. User-correctable, not retryable."""
    status_code = 400


class NotFoundError(ReviewExchangeError):
    """Referenced entity missing or in the wrong state."""
    status_code = 404


class ConflictError(ReviewExchangeError):
    """Store constraint violated by a concurrent mutation. Retry the single operation."""
    status_code = 409
    retryable = True


class StoreFailure(ReviewExchangeError):
    """Transient store or network failure (timeout, throttling)."""
    status_code = 503
    retryable = True


class PartialCycleFailure(ReviewExchangeError):
    """One item in an allocation cycle failed. Logged, never escalated."""

    def __init__(self, item_id: str, cause: Exception):
        super().__init__(f"Allocation failed for item {item_id}: {cause}")
        self.item_id = item_id
        self.cause = cause
