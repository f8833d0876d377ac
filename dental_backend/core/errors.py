"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``main.py`` renders them into the
``{success, error, message}`` envelope with the matching status code.
"""

from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    error = 'Request failed'

    def __init__(self, message: str, *, error: str | None = None, details: dict | list | None = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error
        self.details = details

    def to_payload(self) -> dict:
        payload = {'success': False, 'error': self.error, 'message': self.message}
        if self.details is not None:
            payload['details'] = self.details
        return payload


class ValidationError(AppError):
    error = 'Validation failed'


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error = 'Not found'


class TimeSlotOverlapError(AppError):
    error = 'Time slot overlap detected'


class ScheduleConflictError(AppError):
    error = 'Schedule conflict detected'


class DentistUnavailableError(AppError):
    error = 'Dentist unavailable'


class InvalidStatusTransitionError(AppError):
    error = 'Invalid status transition'


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = 'Unauthorized'


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error = 'Forbidden'


class StorageUnavailableError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = 'Database unavailable'
