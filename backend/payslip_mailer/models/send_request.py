"""
Pydantic models for the send-email endpoint.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

PDF_CONTENT_TYPE = "application/pdf"


class TransportMode(str, Enum):
    STARTTLS = "starttls"
    IMPLICIT_TLS = "implicit_tls"


class UploadedFile(BaseModel):
    """What the router learned about the ``payslip`` upload."""

    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: int = 0
    content: bytes = b""  # left empty when the declared size is already too big


class SendRequest(BaseModel):
    """
    A validated request, scoped to one HTTP call.

    Only ``validate_send_request`` builds these, so a SendRequest always has a
    non-empty name, email and PDF body.
    """

    recipient_name: str
    recipient_email: str
    attachment_bytes: bytes
    attachment_content_type: str = PDF_CONTENT_TYPE
    attachment_filename: Optional[str] = None  # as uploaded; logged only


class SendResult(BaseModel):
    """Successful relay submission, serialised with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    message_id: str = Field(alias="messageId")
    response: str
    mode: TransportMode
