"""
Domain exceptions.

The API maps these onto HTTP status codes; the update pipeline uses them to
decide what is worth retrying.
"""


class PortfolioTrackerError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(PortfolioTrackerError, ValueError):
    status_code = 400


class NotFoundError(PortfolioTrackerError):
    status_code = 404

    @classmethod
    def for_resource(cls, resource: str, identifier: str) -> "NotFoundError":
        return cls(f"{resource} with id {identifier} not found")


class NoDataError(NotFoundError):
    """A query window contained no rows."""


class ConflictError(PortfolioTrackerError):
    status_code = 409


class DuplicateOperationError(ConflictError):
    """A position event with the same operation id was already recorded."""

    def __init__(self, operation_id: str):
        super().__init__(f"Operation {operation_id} has already been applied")
        self.operation_id = operation_id


class RateUnavailableError(PortfolioTrackerError):
    """The upstream source returned no parseable exchange rate."""

    status_code = 503


class ConcurrentUpdateError(PortfolioTrackerError):
    """Another bulk exchange rate update holds the lock."""

    status_code = 429

    def __init__(self, detail: str = "Another update is in progress. Please try again later."):
        super().__init__(detail)


# Raised for bad input or missing data; re-running cannot fix these.
NON_RETRYABLE_ERRORS = (ValueError, NotFoundError, ConflictError, ConcurrentUpdateError)
