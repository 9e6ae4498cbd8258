class ReservationError(Exception):
    """Base class for errors raised by the reservation core."""


class ValidationError(ReservationError):
    """Invalid or missing data for a specific field. Surfaced as HTTP 400."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class NotFoundError(ReservationError):
    def __init__(self, resource: str, resource_id):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.resource_id = resource_id


class ForbiddenError(ReservationError):
    def __init__(self, message: str = "Not enough permissions"):
        super().__init__(message)
        self.message = message


class TransientDateParseWarning(UserWarning):
    """An update carried an unparsable date; the stored value was kept."""
