class AvailabilityError(Exception):
    pass


class InvalidRangeError(AvailabilityError, ValueError):
    """Raised when a date range is reversed or an endpoint is not a calendar date."""


class ResourceNotFoundError(AvailabilityError, LookupError):
    pass


class ReservationNotFoundError(ResourceNotFoundError):
    pass


class PersistenceUnavailableError(AvailabilityError, RuntimeError):
    """The reservation store could not be read or written.

    Callers decide whether to retry; the engine never retries a write itself.
    """
