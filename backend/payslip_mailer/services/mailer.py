"""
Mail dispatcher: the process-wide relay resource.

One ``Mailer`` is created at application startup (see ``payslip_mailer.main``)
and closed at shutdown. It owns the settings and the connection plan; each
send opens its own verified session, because an aiosmtplib client cannot
interleave the MAIL/RCPT/DATA sequences of concurrent requests.
"""

import logging
from typing import Optional

import aiosmtplib
from fastapi import Request

from payslip_mailer.config import Settings
from payslip_mailer.errors import ErrorKind, InternalError, SendEmailError, error_for_kind
from payslip_mailer.models.send_request import SendRequest, SendResult, TransportMode
from payslip_mailer.services.message_builder import build_message
from payslip_mailer.services.relay import (
    RelayEndpoint,
    classify_error,
    close_session,
    connect_with_fallback,
    connection_plan,
)

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> dict:
    """Diagnostic fields for the log line (never includes credentials)."""
    return {
        "name": type(exc).__name__,
        "code": getattr(exc, "code", None),
        "response": getattr(exc, "message", None),
        "error": str(exc),
    }


class Mailer:
    """Sends payslip emails through the configured relay."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.plan: list[RelayEndpoint] = connection_plan(settings)
        self.verified_mode: Optional[TransportMode] = None
        self.closed = False

    def _classified(self, exc: BaseException, action: str) -> SendEmailError:
        kind, code = classify_error(exc)
        logger.error(f"{action} failed: kind={kind.value} relay_code={code} {_describe(exc)}")
        if kind is ErrorKind.UPSTREAM_UNAVAILABLE:
            detail = "Mail relay is unavailable"
        else:
            detail = f"Failed to send email: {exc}"
        return error_for_kind(kind, detail, relay_code=code)

    def _ensure_open(self) -> None:
        if self.closed:
            raise InternalError("Mailer is closed")

    async def verify(self) -> RelayEndpoint:
        """
        Check that the relay accepts our credentials on some endpoint.

        Records the mode that worked in ``verified_mode``.

        Raises:
            UpstreamUnavailableError / InternalError when no endpoint verifies.
        """
        self._ensure_open()
        try:
            smtp, endpoint = await connect_with_fallback(self.plan, self.settings)
        except Exception as exc:
            self.verified_mode = None
            raise self._classified(exc, "SMTP verify") from exc

        await close_session(smtp, self.settings.socket_timeout)
        self.verified_mode = endpoint.mode
        return endpoint

    async def send(self, request: SendRequest) -> SendResult:
        """
        Deliver ``request`` and return the relay's acceptance.

        Raises:
            UpstreamUnavailableError: relay unreachable or rejected our login.
            InternalError: anything else, including missing branding assets
                or a closed Mailer.
        """
        self._ensure_open()
        try:
            message = build_message(
                request,
                sender=self.settings.smtp_user,
                sender_name=self.settings.mail_from_name,
                subject=self.settings.mail_subject,
                static_dir=self.settings.static_dir,
            )
        except (OSError, ValueError) as exc:
            logger.error(f"Could not build message: {_describe(exc)}")
            raise InternalError(f"Failed to build email: {exc}") from exc

        smtp: Optional[aiosmtplib.SMTP] = None
        try:
            smtp, endpoint = await connect_with_fallback(self.plan, self.settings)
            _, response = await smtp.send_message(
                message,
                timeout=self.settings.socket_timeout,
            )
        except Exception as exc:
            raise self._classified(exc, "send-email") from exc
        finally:
            if smtp is not None:
                await close_session(smtp, self.settings.socket_timeout)

        message_id = message["Message-ID"]
        logger.info(
            f"Payslip sent to {request.recipient_email} via {endpoint} "
            f"message_id={message_id} response={response!r}"
        )
        return SendResult(
            message_id=message_id,
            response=response,
            mode=endpoint.mode,
        )

    async def close(self) -> None:
        """Release startup state. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self.verified_mode = None
        logger.info("Mailer closed")


def get_mailer(request: Request) -> Mailer:
    """
    FastAPI dependency returning the application's Mailer.

    Normally created by the startup hook; created on first use otherwise,
    and again if the previous one was closed.
    """
    mailer = getattr(request.app.state, "mailer", None)
    if mailer is None or mailer.closed:
        mailer = Mailer(request.app.state.settings)
        request.app.state.mailer = mailer
    return mailer
