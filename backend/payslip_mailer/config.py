"""
Runtime configuration.

All settings come from environment variables (optionally via a .env file).
Relay credentials are mandatory: ``load_settings`` raises ``ConfigError`` when
they are missing, and ``payslip_mailer.main`` calls it at import time so a
misconfigured process never starts accepting connections.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()

_PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_STATIC_DIR = _PACKAGE_DIR / "public"

DEFAULT_SMTP_HOST = "smtp.dreamhost.com"
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MiB

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable configuration."""


class Settings(BaseModel):
    """Resolved service settings. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = 587
    smtp_secure_port: int = 465
    smtp_user: str
    smtp_password: str
    mail_from_name: str = "Ecommercesteem"
    mail_subject: str = "Your Payslip"

    # Seconds
    connection_timeout: float = 15.0
    greeting_timeout: float = 10.0
    socket_timeout: float = 20.0

    fallback_enabled: bool = True
    require_tls: bool = True
    verify_on_startup: bool = True
    smtp_debug: bool = False
    log_level: str = "INFO"

    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    app_env: str = "development"
    static_dir: Path = DEFAULT_STATIC_DIR
    cors_origins: list[str] = ["*"]
    host: str = "0.0.0.0"
    port: int = 5000

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


def _get(env: Mapping[str, str], *names: str) -> Optional[str]:
    """Return the first non-blank value among ``names``."""
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _as_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _as_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _as_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _as_origins(env: Mapping[str, str]) -> list[str]:
    raw = _get(env, "CORS_ORIGINS")
    if raw is None:
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build ``Settings`` from the environment.

    ``SMTP_USER``/``SMTP_PASS`` carry the sender credentials; the older
    ``DREAMHOST_EMAIL``/``DREAMHOST_PASS`` names are accepted as aliases.

    Raises:
        ConfigError: credentials are missing or a value cannot be parsed.
    """
    env = os.environ if environ is None else environ

    smtp_user = _get(env, "SMTP_USER", "DREAMHOST_EMAIL")
    smtp_password = _get(env, "SMTP_PASS", "DREAMHOST_PASS")
    missing = []
    if not smtp_user:
        missing.append("SMTP_USER")
    if not smtp_password:
        missing.append("SMTP_PASS")
    if missing:
        raise ConfigError(
            f"{' and '.join(missing)} must be set in environment variables"
        )

    max_upload_bytes = _as_int(env, "MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
    if max_upload_bytes <= 0:
        raise ConfigError("MAX_UPLOAD_BYTES must be positive")

    static_dir = _get(env, "STATIC_DIR")

    return Settings(
        smtp_host=_get(env, "SMTP_HOST") or DEFAULT_SMTP_HOST,
        smtp_port=_as_int(env, "SMTP_PORT", 587),
        smtp_secure_port=_as_int(env, "SMTP_SECURE_PORT", 465),
        smtp_user=smtp_user,
        smtp_password=smtp_password,
        mail_from_name=_get(env, "MAIL_FROM_NAME") or "Ecommercesteem",
        mail_subject=_get(env, "MAIL_SUBJECT") or "Your Payslip",
        connection_timeout=_as_float(env, "SMTP_CONNECTION_TIMEOUT", 15.0),
        greeting_timeout=_as_float(env, "SMTP_GREETING_TIMEOUT", 10.0),
        socket_timeout=_as_float(env, "SMTP_SOCKET_TIMEOUT", 20.0),
        fallback_enabled=_as_bool(env, "SMTP_FALLBACK_ENABLED", True),
        require_tls=_as_bool(env, "SMTP_REQUIRE_TLS", True),
        verify_on_startup=_as_bool(env, "SMTP_VERIFY_ON_STARTUP", True),
        smtp_debug=_as_bool(env, "SMTP_DEBUG", False),
        log_level=(_get(env, "LOG_LEVEL") or "INFO").upper(),
        max_upload_bytes=max_upload_bytes,
        app_env=_get(env, "APP_ENV") or "development",
        static_dir=Path(static_dir) if static_dir else DEFAULT_STATIC_DIR,
        cors_origins=_as_origins(env),
        host=_get(env, "HOST") or "0.0.0.0",
        port=_as_int(env, "PORT", 5000),
    )
