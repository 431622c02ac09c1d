"""
Error taxonomy for the form server. Each error maps to one HTTP status in main.py;
messages here are safe to show to clients (no upstream bodies, no token material).
"""


class FormServerError(Exception):
    status_code = 500
    error = "server_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidAttempt(FormServerError):
    """Callback state unknown, already used or expired, or code missing. User must log in again."""

    status_code = 400
    error = "invalid_request"

    def __init__(self, message: str = "Invalid or expired login attempt. Please log in again."):
        super().__init__(message)


class UpstreamAuthFailure(FormServerError):
    """Token exchange or refresh rejected by the provider. Requires a new login."""

    status_code = 401
    error = "authentication_required"

    def __init__(self, message: str = "Authentication required. Please log in again."):
        super().__init__(message)


class UpstreamTransientFailure(FormServerError):
    """Network error, timeout or 5xx from the provider."""

    status_code = 502
    error = "upstream_unavailable"

    def __init__(self, message: str = "Upstream service unavailable. Please try again later."):
        super().__init__(message)


class SchemaValidationFailure(FormServerError):
    status_code = 400
    error = "invalid_form"

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors) or "Invalid form")
        self.errors = errors


class ResourceNotFound(FormServerError):
    status_code = 404
    error = "not_found"


class ConfigurationError(FormServerError):
    error = "configuration_error"


class UpstreamRequestFailed(FormServerError):
    """Non-auth 4xx from the data API (bad base/table/field, permissions, ...)."""

    status_code = 502
    error = "upstream_error"
