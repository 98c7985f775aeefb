"""Typed errors raised by the room services and translated at the HTTP boundary."""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for every expected, user-facing failure."""

    code = 'APP_ERROR'
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(AppError):
    code = 'VALIDATION_ERROR'
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={'field': field} if field else None)
        self.field = field


class NotFoundError(AppError):
    code = 'NOT_FOUND'
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        if identifier is not None:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, details={'resource': resource, 'identifier': identifier})
        self.resource = resource


class RoomNotFoundError(NotFoundError):
    def __init__(self, room_code: str):
        super().__init__('room', room_code)
        self.message = f"Room '{room_code}' not found or has expired"
        self.args = (self.message,)
        self.room_code = room_code


class RoomError(AppError):
    """Room is in the wrong state for the requested operation."""

    code = 'ROOM_ERROR'
    status_code = 400

    def __init__(self, message: str, room_code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code,
                         details={'room_code': room_code} if room_code else None)
        self.room_code = room_code


class RoomFullError(RoomError):
    code = 'ROOM_FULL'

    def __init__(self, room_code: str, max_players: int):
        super().__init__(f"Room '{room_code}' is full (max {max_players} players)", room_code)
        self.max_players = max_players


class AuthorizationError(AppError):
    code = 'AUTHORIZATION_ERROR'
    status_code = 403

    def __init__(self, message: str = 'You do not have permission to perform this action'):
        super().__init__(message)


class ConflictError(AppError):
    code = 'CONFLICT'
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message)


class RateLimitError(AppError):
    code = 'RATE_LIMIT_EXCEEDED'
    status_code = 429

    def __init__(self, retry_after: int = 60):
        super().__init__(
            f'Too many requests. Please try again in {retry_after} seconds.',
            details={'retry_after': retry_after},
        )
        self.retry_after = retry_after


class DatabaseError(AppError):
    code = 'DATABASE_ERROR'
    status_code = 500

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original
