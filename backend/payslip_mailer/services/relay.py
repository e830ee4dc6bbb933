"""
SMTP relay sessions with a fixed two-step fallback.

A session is "verified" once it has connected, completed EHLO, upgraded to
TLS and authenticated with the sender credentials. The connection plan is
tried in order and the first endpoint that verifies wins:

  1. STARTTLS on the submission port (587 by default)
  2. implicit TLS on the secure submission port (465 by default)

There is no retry beyond walking the plan once, and no backoff.

Timeouts (all configurable, in seconds):
  connection_timeout  TCP/TLS establishment and the server greeting
  greeting_timeout    each handshake command (EHLO, STARTTLS, AUTH)
  socket_timeout      message submission, NOOP and QUIT
"""

import asyncio
import logging
import socket
import ssl
from dataclasses import dataclass
from typing import Iterator, Optional

import aiosmtplib

from payslip_mailer.config import Settings
from payslip_mailer.errors import ErrorKind
from payslip_mailer.models.send_request import TransportMode

logger = logging.getLogger(__name__)

# Relay error codes, named after the errno-style codes relays and mail
# libraries usually report.
ECONNREFUSED = "ECONNREFUSED"
ETIMEDOUT = "ETIMEDOUT"
ENOTFOUND = "ENOTFOUND"
ESOCKET = "ESOCKET"
EAUTH = "EAUTH"

# Local file errors are OSErrors too, so socket failures are listed explicitly.
_SOCKET_ERRORS = (
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPServerDisconnected,
    ConnectionError,
    ssl.SSLError,
    socket.herror,
)


@dataclass(frozen=True)
class RelayEndpoint:
    host: str
    port: int
    mode: TransportMode

    def __str__(self) -> str:
        label = "STARTTLS" if self.mode is TransportMode.STARTTLS else "implicit TLS"
        return f"{self.host}:{self.port} ({label})"


def connection_plan(settings: Settings) -> list[RelayEndpoint]:
    """Ordered endpoints to try for one send."""
    plan = [RelayEndpoint(settings.smtp_host, settings.smtp_port, TransportMode.STARTTLS)]
    if settings.fallback_enabled:
        plan.append(
            RelayEndpoint(settings.smtp_host, settings.smtp_secure_port, TransportMode.IMPLICIT_TLS)
        )
    return plan


def _tls_context() -> ssl.SSLContext:
    return ssl.create_default_context()


async def open_session(endpoint: RelayEndpoint, settings: Settings) -> aiosmtplib.SMTP:
    """
    Connect to ``endpoint`` and run the verify handshake.

    Returns a connected, authenticated client. On any failure the client is
    closed and the exception propagates unchanged.
    """
    implicit_tls = endpoint.mode is TransportMode.IMPLICIT_TLS
    smtp = aiosmtplib.SMTP(
        hostname=endpoint.host,
        port=endpoint.port,
        use_tls=implicit_tls,
        start_tls=False,
        timeout=settings.connection_timeout,
        tls_context=_tls_context(),
    )
    try:
        await smtp.connect()
        await smtp.ehlo(timeout=settings.greeting_timeout)

        if endpoint.mode is TransportMode.STARTTLS:
            if smtp.supports_extension("starttls"):
                await smtp.starttls(
                    server_hostname=endpoint.host,
                    timeout=settings.greeting_timeout,
                )
            elif settings.require_tls:
                raise aiosmtplib.SMTPNotSupported(
                    f"{endpoint.host} does not advertise STARTTLS"
                )
            else:
                logger.warning(f"{endpoint} has no STARTTLS; continuing unencrypted")

        await smtp.login(
            settings.smtp_user,
            settings.smtp_password,
            timeout=settings.greeting_timeout,
        )
    except BaseException:
        smtp.close()
        raise
    return smtp


async def connect_with_fallback(
    plan: list[RelayEndpoint],
    settings: Settings,
) -> tuple[aiosmtplib.SMTP, RelayEndpoint]:
    """
    Walk ``plan`` and return the first verified session with its endpoint.

    Raises:
        The exception from the last attempt when every endpoint fails.
    """
    if not plan:
        raise ValueError("connection plan is empty")

    last_error: Optional[Exception] = None
    for attempt, endpoint in enumerate(plan, start=1):
        logger.info(f"Opening SMTP session on {endpoint} (attempt {attempt}/{len(plan)})...")
        try:
            smtp = await open_session(endpoint, settings)
        except Exception as exc:
            _, code = classify_error(exc)
            remaining = "falling back" if attempt < len(plan) else "no fallback left"
            logger.warning(
                f"SMTP verify failed on {endpoint}: {code or type(exc).__name__}: {exc} ({remaining})"
            )
            last_error = exc
            continue

        logger.info(f"SMTP verify OK on {endpoint}")
        return smtp, endpoint

    raise last_error


async def close_session(smtp: aiosmtplib.SMTP, timeout: float) -> None:
    """QUIT politely; drop the connection if the relay does not answer."""
    try:
        if smtp.is_connected:
            await smtp.quit(timeout=timeout)
    except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
        logger.debug(f"QUIT failed, closing connection: {exc}")
        smtp.close()


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    """``exc`` followed by its causes/contexts, without looping."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _specific_code(err: BaseException) -> Optional[str]:
    if isinstance(err, aiosmtplib.SMTPAuthenticationError):
        return EAUTH
    if isinstance(err, ConnectionRefusedError):
        return ECONNREFUSED
    if isinstance(err, socket.gaierror):
        return ENOTFOUND
    if isinstance(err, (asyncio.TimeoutError, TimeoutError)):
        return ETIMEDOUT
    return None


def classify_error(exc: BaseException) -> tuple[ErrorKind, Optional[str]]:
    """
    Map a relay failure to an error kind and relay code.

    Connection refused, timeouts, DNS failures, other socket errors and
    authentication failures mean the upstream relay is unavailable. Anything
    else is internal; its SMTP reply code is reported when there is one.
    """
    chain = list(_error_chain(exc))

    for err in chain:
        code = _specific_code(err)
        if code:
            return ErrorKind.UPSTREAM_UNAVAILABLE, code

    for err in chain:
        if isinstance(err, _SOCKET_ERRORS):
            return ErrorKind.UPSTREAM_UNAVAILABLE, ESOCKET

    smtp_code = getattr(exc, "code", None)
    return ErrorKind.INTERNAL, str(smtp_code) if isinstance(smtp_code, int) else None
