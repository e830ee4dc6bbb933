"""
Send-email router.

Endpoints:
  POST /send-email   validate name/email/payslip and relay the payslip email

Form fields are declared optional so that a missing field is reported by the
validator (400 MissingField listing every absent field) instead of FastAPI's
generic 422.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from payslip_mailer.errors import InternalError, SendEmailError
from payslip_mailer.models.send_request import UploadedFile
from payslip_mailer.services.mailer import Mailer, get_mailer
from payslip_mailer.services.validator import validate_send_request

logger = logging.getLogger(__name__)

router = APIRouter()

# Multipart fields, in the order missing ones are reported.
FORM_FIELDS = ("name", "email", "payslip")


async def _read_upload(file: Optional[UploadFile], max_bytes: int) -> Optional[UploadedFile]:
    """
    Read the uploaded payslip, skipping the body when it is declared too big.

    ``UploadFile.size`` is not always set, so the validator re-checks the
    length of what was actually read.
    """
    if file is None:
        return None

    if file.size is not None and file.size > max_bytes:
        return UploadedFile(
            filename=file.filename,
            content_type=file.content_type,
            size=file.size,
        )

    content = await file.read()
    return UploadedFile(
        filename=file.filename,
        content_type=file.content_type,
        size=len(content),
        content=content,
    )


@router.post("/send-email")
async def send_email(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    payslip: Optional[UploadFile] = File(None),
    mailer: Mailer = Depends(get_mailer),
) -> dict:
    """Relay a payslip PDF to ``email``, addressed to ``name``."""
    max_bytes = mailer.settings.max_upload_bytes
    upload = await _read_upload(payslip, max_bytes)
    logger.info(
        f"Send request received: email={email!r}, "
        f"filename={getattr(upload, 'filename', None)!r}, "
        f"content_type={getattr(upload, 'content_type', None)!r}, "
        f"size={getattr(upload, 'size', 0)}"
    )

    send_request = validate_send_request(name, email, upload, max_bytes=max_bytes)
    # Unclassified failures become InternalError here so the response is
    # rendered inside the middleware stack (CORS headers included).
    try:
        result = await mailer.send(send_request)
    except SendEmailError:
        raise
    except Exception as exc:
        logger.exception(f"Unexpected error sending payslip to {send_request.recipient_email}")
        raise InternalError(f"Failed to send email: {type(exc).__name__}: {exc}") from exc
    return result.model_dump(by_alias=True, mode="json")
