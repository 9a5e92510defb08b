"""
Scheduling errors.

Every error is terminal for the request that raised it. Each carries a
machine-readable ``error`` code and, where the caller can fix the input,
the offending ``field``; ``app.main`` renders them into the error envelope.
"""
from typing import Optional
from fastapi import HTTPException, status

class SchedulingError(HTTPException):
    error = "scheduling_error"
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(status_code=self.status_code_default, detail=detail)
        self.field = field

class ValidationError(SchedulingError):
    """Missing or malformed input, or a time that is not in the future."""
    error = "validation_error"

class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""
    error = "invalid_transition"

class AvailabilityError(SchedulingError):
    """Requested window lies outside the doctor's weekly hours."""
    error = "availability_error"

class NotFoundError(SchedulingError):
    error = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND

class ConflictError(SchedulingError):
    error = "conflict"
    status_code_default = status.HTTP_409_CONFLICT

class TransientStoreError(SchedulingError):
    """Storage call failed; the detail shown to callers stays generic."""
    error = "store_error"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str = "A storage error occurred. Please try again later."):
        super().__init__(detail)
