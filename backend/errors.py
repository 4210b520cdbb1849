# errors.py — Domain errors raised by the core services
# Translated into HTTP responses by the exception handler in main.py.
# Codes follow TG-{DOMAIN}-{NUMBER}.


class TaskgridError(Exception):
    status_code = 500
    code = "TG-SYS-001"
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(TaskgridError):
    """No valid principal where one is required"""
    status_code = 401
    code = "TG-AUTH-001"
    default_message = "Authentication required"


class PermissionDeniedError(TaskgridError):
    """A valid principal lacks the required role or permission"""
    status_code = 403
    code = "TG-AUTH-003"
    default_message = "Insufficient permissions"


class NotFoundError(TaskgridError):
    # Also used for resources outside the caller's organization
    status_code = 404
    code = "TG-DB-002"
    default_message = "Resource not found"


class ConflictError(TaskgridError):
    status_code = 409
    code = "TG-DB-003"
    default_message = "Resource already exists"
