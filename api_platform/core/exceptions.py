"""
Exception classes for the core module.

Every error raised while talking to the backend derives from ApiError, so
callers can catch the whole family at once or pick the specific conditions
(authentication, duplicates, expired refresh tokens, network failures).
"""

import sentry_sdk


class ApiError(Exception):
    """Base class for errors coming from the API backend"""

    def __init__(self, message: str, status: int | None = None, detail=None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.detail = detail


class AuthenticationError(ApiError):
    """The backend rejected the request with a 401"""


class DuplicateError(ApiError):
    """The dataset has already been inserted (the backend answers with a 418)"""


class RefreshTokenExpired(ApiError):
    """The refresh token itself was rejected, a new login is required"""


class NetworkError(ApiError):
    """The backend could not be reached"""


class UnexpectedError(ApiError):
    """Any other non successful response"""


class ConfigurationError(Exception):
    """A required option has not been configured"""


def error_message(detail) -> str | None:
    if isinstance(detail, dict):
        # API Platform and LexikJWT use different keys for the human readable part
        for key in ("message", "hydra:description", "detail", "description"):
            if detail.get(key):
                return str(detail[key])
        return None
    if detail:
        return str(detail)
    return None


def handle_exception(status: int, detail: str | dict | None, url: str):
    """Raise the ApiError matching an unsuccessful response status."""
    message = error_message(detail)
    if status == 401:
        raise AuthenticationError(message or "Unauthorized", status, detail)
    if status == 418:
        raise DuplicateError(message or "duplicate", status, detail)
    event_id = None
    if sentry_sdk.get_client().is_active():
        with sentry_sdk.new_scope() as scope:
            scope.set_tags({"status": status, "url": url})
            scope.set_extra("detail", detail)
            event_id = sentry_sdk.capture_exception(Exception(message or detail))
    error = UnexpectedError(message or f"Unexpected response status {status}", status, detail)
    error.event_id = event_id
    raise error
