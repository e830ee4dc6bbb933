"""
Request validation for POST /send-email.

Checks run in a fixed order (missing fields, email shape, media type, size)
and the first failing check raises. Nothing here touches the network.
"""

import re
from typing import Optional

from payslip_mailer.errors import (
    InvalidFieldError,
    MissingFieldError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from payslip_mailer.models.send_request import PDF_CONTENT_TYPE, SendRequest, UploadedFile

_EMAIL_RE = re.compile(r"^[^@\s<>,;]+@[^@\s<>,;]+\.[^@\s<>,;]+$")


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case media type with any parameters (``; charset=...``) removed."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def _format_size(num_bytes: int) -> str:
    mib = num_bytes / (1024 * 1024)
    if mib >= 1:
        return f"{mib:g} MB"
    return f"{num_bytes} bytes"


def validate_send_request(
    name: Optional[str],
    email: Optional[str],
    upload: Optional[UploadedFile],
    max_bytes: int,
) -> SendRequest:
    """
    Turn raw form fields into a SendRequest.

    Raises:
        MissingFieldError: name, email or payslip absent (all are listed).
        InvalidFieldError: email is not a single plain address.
        UnsupportedMediaTypeError: payslip is not declared as a PDF.
        PayloadTooLargeError: payslip is larger than ``max_bytes``.
    """
    name = _clean(name)
    email = _clean(email)

    missing = []
    if not name:
        missing.append("name")
    if not email:
        missing.append("email")
    if upload is None or upload.size <= 0:
        missing.append("payslip")
    if missing:
        raise MissingFieldError(missing)

    if not _EMAIL_RE.match(email):
        raise InvalidFieldError("email must be a single email address")

    content_type = normalize_content_type(upload.content_type)
    if content_type != PDF_CONTENT_TYPE:
        raise UnsupportedMediaTypeError(
            f"payslip must be a PDF ({PDF_CONTENT_TYPE}), got {content_type or 'no content type'}"
        )

    if upload.size > max_bytes or len(upload.content) > max_bytes:
        raise PayloadTooLargeError(f"payslip exceeds {_format_size(max_bytes)} limit")

    return SendRequest(
        recipient_name=name,
        recipient_email=email,
        attachment_bytes=upload.content,
        attachment_content_type=content_type,
        attachment_filename=upload.filename,
    )
