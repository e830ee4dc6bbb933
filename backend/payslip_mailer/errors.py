"""
Error taxonomy for the send-email endpoint.

Every failure the endpoint reports is a ``SendEmailError`` subclass. The
application registers a handler that renders ``to_response()`` with the
matching status code, so routers and services just raise.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MISSING_FIELD = "MissingField"
    INVALID_FIELD = "InvalidField"
    UNSUPPORTED_MEDIA_TYPE = "UnsupportedMediaType"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    INTERNAL = "Internal"


class SendEmailError(Exception):
    """Base class for classified send-email failures."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(
        self,
        detail: str,
        *,
        missing: Optional[list[str]] = None,
        relay_code: Optional[str] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.missing = missing
        self.relay_code = relay_code

    def to_response(self, detail: Optional[str] = None) -> dict:
        """Structured JSON body. ``detail`` overrides the message when given."""
        body = {
            "ok": False,
            "error": self.kind.value,
            "detail": detail if detail is not None else self.detail,
        }
        if self.missing:
            body["missing"] = list(self.missing)
        if self.relay_code:
            body["code"] = self.relay_code
        return body


class MissingFieldError(SendEmailError):
    kind = ErrorKind.MISSING_FIELD
    status_code = 400

    def __init__(self, missing: list[str]):
        super().__init__(
            f"Missing required data: {', '.join(missing)}",
            missing=missing,
        )


class InvalidFieldError(SendEmailError):
    kind = ErrorKind.INVALID_FIELD
    status_code = 400


class UnsupportedMediaTypeError(SendEmailError):
    kind = ErrorKind.UNSUPPORTED_MEDIA_TYPE
    status_code = 400


class PayloadTooLargeError(SendEmailError):
    kind = ErrorKind.PAYLOAD_TOO_LARGE
    status_code = 413


class UpstreamUnavailableError(SendEmailError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502


class InternalError(SendEmailError):
    kind = ErrorKind.INTERNAL
    status_code = 500


_ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (UpstreamUnavailableError, InternalError)
}


def error_for_kind(kind: ErrorKind, detail: str, relay_code: Optional[str] = None) -> SendEmailError:
    """Build the transport-side error for a classification result."""
    cls = _ERRORS_BY_KIND.get(kind, InternalError)
    return cls(detail, relay_code=relay_code)
