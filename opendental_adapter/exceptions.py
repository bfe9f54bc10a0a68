from __future__ import annotations


class SchedulingError(Exception):
    """Base exception for scheduling failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class InvalidRequest(SchedulingError):
    """Raised when a booking request is missing required fields."""

    def __init__(self, missing_fields: list[str], *, cause: Exception | None = None):
        super().__init__(f"Missing required fields: {', '.join(missing_fields)}", cause=cause)
        self.missing_fields = missing_fields


class InvalidDuration(SchedulingError):
    """Raised when an appointment duration is not a positive number of minutes."""

    def __init__(self, duration_minutes: int):
        super().__init__(f"Appointment duration must be positive, got {duration_minutes}")
        self.duration_minutes = duration_minutes


class SchedulingProviderError(SchedulingError):
    """Raised when the Open Dental API fails or returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code
