"""
Application error taxonomy.

Operational errors carry an HTTP status and a client-safe message and are
rendered by the handlers registered in app.py. Anything else is treated as a
programming error and logged with full context.
"""


class AppError(Exception):
    """Base class for expected, client-facing failures."""

    status_code = 500

    def __init__(self, message, status_code=None, is_operational=True, errors=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.is_operational = is_operational
        self.errors = errors

    def to_dict(self):
        body = {'status': 'error', 'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return body


class ValidationError(AppError):
    """Bad input or a business rule violation (400).

    `errors` is a list of {'field': ..., 'message': ...} pairs when the
    failure came from request validation.
    """

    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409
