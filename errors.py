# errors.py


class DashboardError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ParseError(DashboardError):
    """Pasted client details could not be turned into a record."""


class DuplicateError(DashboardError):
    status_code = 409


class NotFoundError(DashboardError):
    status_code = 404


class AuthError(DashboardError):
    status_code = 401


class PermissionDenied(DashboardError):
    status_code = 403
