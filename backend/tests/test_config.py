"""
Unit tests for environment configuration loading.
"""

from pathlib import Path

import pytest

from payslip_mailer.config import DEFAULT_STATIC_DIR, ConfigError, load_settings


def _env(**overrides):
    env = {"SMTP_USER": "payroll@example.com", "SMTP_PASS": "secret"}
    env.update(overrides)
    return env


class TestRequiredCredentials:
    def test_missing_user_and_password_raises(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings({})

        assert "SMTP_USER" in str(exc_info.value)
        assert "SMTP_PASS" in str(exc_info.value)

    def test_missing_password_raises(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings({"SMTP_USER": "payroll@example.com"})

        assert "SMTP_PASS" in str(exc_info.value)
        assert "SMTP_USER" not in str(exc_info.value)

    def test_blank_credentials_count_as_missing(self):
        with pytest.raises(ConfigError):
            load_settings({"SMTP_USER": "   ", "SMTP_PASS": ""})

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)

    def test_legacy_dreamhost_names_are_accepted(self):
        settings = load_settings(
            {"DREAMHOST_EMAIL": "asad@example.com", "DREAMHOST_PASS": "pw"}
        )
        assert settings.smtp_user == "asad@example.com"
        assert settings.smtp_password == "pw"

    def test_smtp_names_take_precedence_over_legacy_names(self):
        settings = load_settings(
            _env(DREAMHOST_EMAIL="old@example.com", DREAMHOST_PASS="old")
        )
        assert settings.smtp_user == "payroll@example.com"


class TestDefaults:
    def test_defaults(self):
        settings = load_settings(_env())

        assert settings.smtp_host == "smtp.dreamhost.com"
        assert settings.smtp_port == 587
        assert settings.smtp_secure_port == 465
        assert settings.connection_timeout == 15.0
        assert settings.greeting_timeout == 10.0
        assert settings.socket_timeout == 20.0
        assert settings.max_upload_bytes == 5 * 1024 * 1024
        assert settings.fallback_enabled is True
        assert settings.require_tls is True
        assert settings.mail_subject == "Your Payslip"
        assert settings.static_dir == DEFAULT_STATIC_DIR
        assert settings.cors_origins == ["*"]
        assert settings.port == 5000
        assert settings.is_production is False

    def test_default_static_dir_contains_branding_images(self):
        for filename in ("logo.png", "icon.png", "instagram.png", "linkedin.png"):
            assert (DEFAULT_STATIC_DIR / filename).is_file()


class TestOverrides:
    def test_numeric_and_boolean_overrides(self):
        settings = load_settings(_env(
            SMTP_HOST="mail.example.com",
            SMTP_PORT="2525",
            SMTP_CONNECTION_TIMEOUT="3",
            SMTP_GREETING_TIMEOUT="2.5",
            SMTP_SOCKET_TIMEOUT="7",
            SMTP_FALLBACK_ENABLED="false",
            SMTP_DEBUG="yes",
            MAX_UPLOAD_BYTES="1024",
            APP_ENV="production",
            LOG_LEVEL="debug",
        ))

        assert settings.smtp_host == "mail.example.com"
        assert settings.smtp_port == 2525
        assert settings.connection_timeout == 3.0
        assert settings.greeting_timeout == 2.5
        assert settings.socket_timeout == 7.0
        assert settings.fallback_enabled is False
        assert settings.smtp_debug is True
        assert settings.max_upload_bytes == 1024
        assert settings.is_production is True
        assert settings.log_level == "DEBUG"

    def test_cors_origins_are_split_and_trimmed(self):
        settings = load_settings(_env(CORS_ORIGINS="https://a.example, ,https://b.example "))
        assert settings.cors_origins == ["https://a.example", "https://b.example"]

    def test_static_dir_override(self, tmp_path):
        settings = load_settings(_env(STATIC_DIR=str(tmp_path)))
        assert settings.static_dir == Path(tmp_path)

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SMTP_PORT", "five-eight-seven"),
            ("SMTP_SOCKET_TIMEOUT", "soon"),
            ("SMTP_SOCKET_TIMEOUT", "0"),
            ("SMTP_FALLBACK_ENABLED", "maybe"),
            ("MAX_UPLOAD_BYTES", "-1"),
        ],
    )
    def test_bad_values_raise(self, name, value):
        with pytest.raises(ConfigError) as exc_info:
            load_settings(_env(**{name: value}))
        assert name in str(exc_info.value)

    def test_settings_are_immutable(self):
        settings = load_settings(_env())
        with pytest.raises(Exception):
            settings.smtp_port = 25
