"""
Application-level tests: liveness, static assets, relay health check, the
catch-all error handler and the Mailer lifecycle hooks.
"""

import importlib
import os
import sys
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import aiosmtplib
import pytest

# Ensure env vars are set before importing anything that triggers app imports
os.environ.setdefault("SMTP_USER", "payroll@example.com")
os.environ.setdefault("SMTP_PASS", "test-password")
os.environ.setdefault("SMTP_VERIFY_ON_STARTUP", "false")

from fastapi.testclient import TestClient

from payslip_mailer.config import ConfigError, Settings
from payslip_mailer.errors import UpstreamUnavailableError
from payslip_mailer.models.send_request import TransportMode
from payslip_mailer.services.mailer import Mailer, get_mailer
from payslip_mailer.services.relay import RelayEndpoint

PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


def _settings(**overrides) -> Settings:
    values = {"smtp_user": "payroll@example.com", "smtp_password": "secret"}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def app():
    from payslip_mailer.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    return TestClient(app)


class TestLiveness:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "Email sender is running."

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_static_logo_is_served(self, client):
        response = client.get("/public/logo.png")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"

    def test_static_dir_is_not_writable_over_http(self, client):
        response = client.post("/public/logo.png")
        assert response.status_code == 405


class TestSmtpHealth:
    def test_ok(self, app, client):
        mailer = Mock(spec=Mailer)
        mailer.verify = AsyncMock(
            return_value=RelayEndpoint("smtp.example.com", 587, TransportMode.STARTTLS)
        )
        app.dependency_overrides[get_mailer] = lambda: mailer

        response = client.get("/health/smtp")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "host": "smtp.example.com",
            "port": 587,
            "mode": "starttls",
        }

    def test_unavailable_returns_503(self, app, client):
        mailer = Mock(spec=Mailer)
        mailer.verify = AsyncMock(
            side_effect=UpstreamUnavailableError("Mail relay is unavailable", relay_code="ETIMEDOUT")
        )
        app.dependency_overrides[get_mailer] = lambda: mailer

        response = client.get("/health/smtp")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "ETIMEDOUT"


class TestCatchAll:
    def _broken_mailer(self):
        mailer = Mock(spec=Mailer)
        mailer.settings = _settings()
        mailer.send = AsyncMock(side_effect=RuntimeError("boom"))
        return mailer

    def _post(self, app, headers=None):
        client = TestClient(app, raise_server_exceptions=False)
        return client.post(
            "/send-email",
            data={"name": "Jo", "email": "jo@example.com"},
            files={"payslip": ("march.pdf", PDF_BYTES, "application/pdf")},
            headers=headers,
        )

    def test_unhandled_error_becomes_structured_500(self, app):
        app.dependency_overrides[get_mailer] = self._broken_mailer

        response = self._post(app)

        assert response.status_code == 500
        body = response.json()
        assert body["ok"] is False
        assert body["error"] == "Internal"
        assert "boom" in body["detail"]

    def test_production_hides_internal_detail(self, app):
        app.dependency_overrides[get_mailer] = self._broken_mailer

        with patch("payslip_mailer.main.settings", _settings(app_env="production")):
            response = self._post(app)

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to send email"

    def test_unexpected_send_error_keeps_cors_headers(self, app):
        app.dependency_overrides[get_mailer] = self._broken_mailer

        response = self._post(app, headers={"Origin": "https://payroll.example.com"})

        assert response.status_code == 500
        assert response.json()["error"] == "Internal"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unhandled_error_outside_send_is_structured(self, app):
        mailer = Mock(spec=Mailer)
        mailer.verify = AsyncMock(side_effect=RuntimeError("kaput"))
        app.dependency_overrides[get_mailer] = lambda: mailer
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/health/smtp")

        assert response.status_code == 500
        assert response.json()["error"] == "Internal"
        assert "kaput" in response.json()["detail"]


class TestLifecycle:
    def test_startup_creates_mailer_and_shutdown_closes_it(self, app):
        with TestClient(app):
            mailer = app.state.mailer
            assert isinstance(mailer, Mailer)
            assert mailer.closed is False

        assert mailer.closed is True

    def test_failed_startup_verify_does_not_stop_the_app(self, app):
        def refusing_smtp(**kwargs):
            smtp = MagicMock()
            error = aiosmtplib.SMTPConnectError("Error connecting")
            error.__cause__ = ConnectionRefusedError(111, "Connection refused")
            smtp.connect = AsyncMock(side_effect=error)
            smtp.close = Mock()
            return smtp

        with patch("payslip_mailer.main.settings", _settings(verify_on_startup=True)), \
             patch("aiosmtplib.SMTP", side_effect=refusing_smtp) as mock_smtp:
            with TestClient(app) as client:
                response = client.get("/health")

        assert response.status_code == 200
        assert mock_smtp.call_count == 2
        assert app.state.mailer.verified_mode is None

    def test_get_mailer_creates_one_lazily(self, app):
        app.state.mailer = None
        request = Mock()
        request.app = app

        mailer = get_mailer(request)

        assert isinstance(mailer, Mailer)
        assert get_mailer(request) is mailer

    def test_get_mailer_replaces_a_closed_one(self, app):
        closed = Mailer(_settings())
        closed.closed = True
        app.state.mailer = closed
        request = Mock()
        request.app = app

        mailer = get_mailer(request)

        assert mailer is not closed
        assert mailer.closed is False


class TestStartupConfig:
    def test_missing_credentials_stop_the_app_at_import(self, monkeypatch):
        for var in ("SMTP_USER", "SMTP_PASS", "DREAMHOST_EMAIL", "DREAMHOST_PASS"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.delitem(sys.modules, "payslip_mailer.main", raising=False)

        with pytest.raises(ConfigError, match="SMTP_USER and SMTP_PASS"):
            importlib.import_module("payslip_mailer.main")

        assert "payslip_mailer.main" not in sys.modules
