"""
Payslip Mailer API
FastAPI application that relays payslip PDFs to employees by email.
"""

import logging

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from payslip_mailer.config import load_settings
from payslip_mailer.errors import (
    ErrorKind,
    InternalError,
    InvalidFieldError,
    MissingFieldError,
    SendEmailError,
)
from payslip_mailer.routers import send_email
from payslip_mailer.services.mailer import Mailer, get_mailer

# Raises ConfigError before anything is served when credentials are missing.
settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
if settings.smtp_debug:
    for logger_name in ("payslip_mailer.services", "aiosmtplib"):
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

logger = logging.getLogger(__name__)

GENERIC_INTERNAL_DETAIL = "Failed to send email"

app = FastAPI(
    title="Payslip Mailer API",
    description="Relays payslip PDFs to employees through an SMTP relay",
    version="0.1.0",
)
app.state.settings = settings

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(send_email.router, tags=["send-email"])

# Inline branding images, also fetchable directly.
app.mount("/public", StaticFiles(directory=settings.static_dir), name="public")


def _error_response(exc: SendEmailError) -> JSONResponse:
    detail = None
    if exc.kind is ErrorKind.INTERNAL and settings.is_production:
        detail = GENERIC_INTERNAL_DETAIL
    return JSONResponse(status_code=exc.status_code, content=exc.to_response(detail))


@app.exception_handler(SendEmailError)
async def send_email_error_handler(request: Request, exc: SendEmailError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.kind.value}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.kind.value}: {exc.detail}")
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Render FastAPI's form validation failures as 400s.

    A ``payslip`` sent as a plain text field instead of a file fails here,
    before the validator runs; it is reported as missing.
    """
    invalid = {err["loc"][-1] for err in exc.errors() if len(err.get("loc", ())) > 1}
    missing = [field for field in send_email.FORM_FIELDS if field in invalid]
    if missing:
        error: SendEmailError = MissingFieldError(missing)
    else:
        error = InvalidFieldError(f"Malformed request body: {exc.errors()}")
    return await send_email_error_handler(request, error)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(InternalError(f"{type(exc).__name__}: {exc}"))


@app.on_event("startup")
async def start_mailer() -> None:
    """
    Create the Mailer and check the relay once.

    A failed check is logged, not fatal: the relay may come back before the
    first request. Missing credentials already stopped the process at import.
    """
    logger.info(f"Email sender running at http://localhost:{settings.port}")
    mailer = Mailer(settings)
    app.state.mailer = mailer

    if not settings.verify_on_startup:
        return
    try:
        endpoint = await mailer.verify()
        logger.info(f"SMTP relay ready on {endpoint}")
    except SendEmailError as exc:
        logger.error(f"SMTP relay check failed at startup ({exc.relay_code or exc.kind.value})")


@app.on_event("shutdown")
async def stop_mailer() -> None:
    mailer = getattr(app.state, "mailer", None)
    if mailer is not None:
        await mailer.close()


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Email sender is running."


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/smtp")
async def health_smtp(mailer: Mailer = Depends(get_mailer)):
    """
    Run the relay handshake on demand.

    Returns 503 with the relay error code when no endpoint verifies.
    """
    try:
        endpoint = await mailer.verify()
    except SendEmailError as exc:
        raise HTTPException(
            status_code=503,
            detail={"status": "unavailable", "code": exc.relay_code, "error": exc.kind.value},
        )
    return {"status": "ok", "host": endpoint.host, "port": endpoint.port, "mode": endpoint.mode.value}


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
