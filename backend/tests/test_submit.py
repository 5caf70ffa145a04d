"""
POST /submit endpoint tests.

The mail config, test-account provisioner and transport factory are replaced
through app.dependency_overrides. RecordingTransport stands in for SMTP and
records every construction and every message it is asked to send.

Coverage:
  - 400 for missing / empty image and malformed bodies, no transport built
  - configured credentials → service transport, no test account
  - no secret → one test account, preview URL logged
  - data URI scenario → visitor.png attachment with verbatim content
  - EAUTH failure → 500 with details and an authentication hint in the log
  - other failures → 500 with details
  - body size limit, landing page, health
"""

import logging
import os
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from visitor.main import app
from visitor.models.mail import EtherealAccount, MailConfig, SendInfo
from visitor.routers.submit import (
    get_mail_config,
    get_test_account_provisioner,
    get_transport_factory,
)
from visitor.services.mail_transport import (
    MailAuthenticationError,
    MailDeliveryError,
    TransportProvisionError,
)

CONFIGURED = MailConfig(user="owner@example.com", password="app-password", service="gmail")
UNCONFIGURED = MailConfig(user="owner@example.com", password=None)

PNG_SUBMISSION = {"image": "data:image/png;base64,QUJD", "time": "2026-01-01T00:00:00Z"}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class RecordingTransport:
    """Transport double: records constructor kwargs and sent messages."""

    instances: list = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.sent = []
        self.info = SendInfo(response="250 Accepted [STATUS=new MSGID=abc123]")
        self.error = None
        RecordingTransport.instances.append(self)

    async def send(self, message):
        self.sent.append(message)
        if self.error is not None:
            raise self.error
        return self.info


def _failing_factory(error):
    def factory(**kwargs):
        transport = RecordingTransport(**kwargs)
        transport.error = error
        return transport
    return factory


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def provisioner():
    return AsyncMock(return_value=EtherealAccount(user="abc@ethereal.email", password="generated"))


@pytest.fixture()
def client(provisioner):
    """TestClient with configured credentials and the recording transport."""
    RecordingTransport.instances = []
    app.dependency_overrides[get_mail_config] = lambda: CONFIGURED
    app.dependency_overrides[get_test_account_provisioner] = lambda: provisioner
    app.dependency_overrides[get_transport_factory] = lambda: RecordingTransport
    yield TestClient(app)
    app.dependency_overrides.clear()


def _sent_messages():
    return [m for t in RecordingTransport.instances for m in t.sent]


# ===========================================================================
# Validation
# ===========================================================================

class TestSubmitValidation:
    def test_empty_object_returns_400(self, client):
        response = client.post("/submit", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "No image received"}
        assert RecordingTransport.instances == []

    def test_empty_image_returns_400(self, client):
        response = client.post("/submit", json={"image": "", "time": "now"})

        assert response.status_code == 400
        assert response.json() == {"error": "No image received"}
        assert RecordingTransport.instances == []

    def test_null_image_returns_400(self, client):
        response = client.post("/submit", json={"image": None})

        assert response.status_code == 400
        assert response.json() == {"error": "No image received"}

    def test_missing_body_returns_400(self, client, provisioner):
        response = client.post("/submit")

        assert response.status_code == 400
        assert response.json() == {"error": "No image received"}
        provisioner.assert_not_called()

    def test_invalid_json_returns_400_with_error_key(self, client):
        response = client.post(
            "/submit",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"
        assert RecordingTransport.instances == []

    def test_wrong_field_type_returns_400(self, client):
        response = client.post("/submit", json={"image": "https://example.com/x.png", "latitude": "north"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request body"
        assert "latitude" in body["details"]

    def test_unknown_fields_are_ignored(self, client):
        response = client.post(
            "/submit",
            json={"image": "https://example.com/x.png", "userAgent": "test"},
        )

        assert response.status_code == 200


# ===========================================================================
# Configured transport
# ===========================================================================

class TestSubmitConfiguredTransport:
    def test_data_uri_scenario(self, client, provisioner):
        response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        provisioner.assert_not_called()

        messages = _sent_messages()
        assert len(messages) == 1
        message = messages[0]
        assert len(message.attachments) == 1
        assert message.attachments[0].filename == "visitor.png"
        assert message.attachments[0].content == "QUJD"
        assert "QUJD" not in message.html
        assert "2026-01-01T00:00:00Z" in message.html

    def test_sends_to_configured_user(self, client):
        client.post("/submit", json=PNG_SUBMISSION)

        message = _sent_messages()[0]
        assert message.sender == "owner@example.com"
        assert message.to == "owner@example.com"

    def test_transport_uses_service_preset(self, client):
        client.post("/submit", json=PNG_SUBMISSION)

        assert len(RecordingTransport.instances) == 1
        kwargs = RecordingTransport.instances[0].kwargs
        assert kwargs["service"] == "gmail"
        assert kwargs["host"] == "smtp.gmail.com"
        assert kwargs["user"] == "owner@example.com"
        assert kwargs["password"] == "app-password"

    def test_remote_url_is_sent_without_attachment(self, client):
        response = client.post("/submit", json={"image": "https://example.com/x.png"})

        assert response.status_code == 200
        message = _sent_messages()[0]
        assert message.attachments == []
        assert 'src="https://example.com/x.png"' in message.html

    def test_malformed_data_uri_still_sends(self, client):
        response = client.post("/submit", json={"image": "data:image/png,QUJD"})

        assert response.status_code == 200
        assert _sent_messages()[0].attachments == []

    def test_undecodable_payload_still_sends_inline(self, client):
        response = client.post("/submit", json={"image": "data:image/png;base64,A"})

        assert response.status_code == 200
        message = _sent_messages()[0]
        assert message.attachments == []
        assert 'src="data:image/png;base64,A"' in message.html

    def test_numeric_epoch_time_is_accepted(self, client):
        response = client.post(
            "/submit",
            json={"image": "https://example.com/x.png", "time": 1767225600000},
        )

        assert response.status_code == 200
        assert "<b>Time:</b> 1767225600000</p>" in _sent_messages()[0].html

    def test_invalid_smtp_timeout_falls_back_to_default(self, client):
        del app.dependency_overrides[get_mail_config]
        env = {
            "SMTP_USER": "owner@example.com",
            "SMTP_PASS": "app-password",
            "SMTP_SERVICE": "gmail",
            "SMTP_TIMEOUT": "soon",
        }

        with patch.dict(os.environ, env):
            response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 200
        assert RecordingTransport.instances[0].kwargs["timeout"] == 60.0

    def test_subject_can_be_overridden(self, client):
        with patch.dict(os.environ, {"MAIL_SUBJECT": "Someone visited"}):
            client.post("/submit", json=PNG_SUBMISSION)

        assert _sent_messages()[0].subject == "Someone visited"


# ===========================================================================
# Disposable test account
# ===========================================================================

class TestSubmitTestAccount:
    def test_provisions_account_once_and_logs_preview(self, client, provisioner, caplog):
        app.dependency_overrides[get_mail_config] = lambda: UNCONFIGURED

        with caplog.at_level(logging.INFO):
            response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 200
        provisioner.assert_awaited_once()
        kwargs = RecordingTransport.instances[0].kwargs
        assert kwargs["host"] == "smtp.ethereal.email"
        assert kwargs["port"] == 587
        assert kwargs["secure"] is False
        assert kwargs["user"] == "abc@ethereal.email"
        assert "Preview URL: https://ethereal.email/message/abc123" in caplog.text

    def test_each_request_gets_a_fresh_account(self, client, provisioner):
        app.dependency_overrides[get_mail_config] = lambda: UNCONFIGURED

        client.post("/submit", json=PNG_SUBMISSION)
        client.post("/submit", json=PNG_SUBMISSION)

        assert provisioner.await_count == 2

    def test_provisioning_failure_returns_500(self, client, provisioner):
        app.dependency_overrides[get_mail_config] = lambda: UNCONFIGURED
        provisioner.side_effect = TransportProvisionError("Failed to create Ethereal test account: offline")

        response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 500
        assert response.json() == {
            "error": "Mail failed",
            "details": "Failed to create Ethereal test account: offline",
        }


# ===========================================================================
# Send failures
# ===========================================================================

class TestSubmitFailures:
    def test_authentication_failure_logs_hint(self, client, caplog):
        error = MailAuthenticationError("Invalid login: 535 5.7.8 Username and Password not accepted")
        app.dependency_overrides[get_transport_factory] = lambda: _failing_factory(error)

        with caplog.at_level(logging.ERROR):
            response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 500
        assert response.json() == {
            "error": "Mail failed",
            "details": "Invalid login: 535 5.7.8 Username and Password not accepted",
        }
        assert "MAIL ERROR (authentication)" in caplog.text

    def test_delivery_failure_has_no_auth_hint(self, client, caplog):
        error = MailDeliveryError("Connection to smtp.gmail.com:465 failed", code="ECONNECTION")
        app.dependency_overrides[get_transport_factory] = lambda: _failing_factory(error)

        with caplog.at_level(logging.ERROR):
            response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 500
        assert response.json()["details"] == "Connection to smtp.gmail.com:465 failed"
        assert "MAIL ERROR (authentication)" not in caplog.text
        assert "MAIL ERROR" in caplog.text

    def test_unknown_service_returns_500(self, client):
        app.dependency_overrides[get_mail_config] = lambda: MailConfig(
            user="owner@example.com", password="x", service="carrier-pigeon"
        )

        response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 500
        assert response.json()["error"] == "Mail failed"
        assert "carrier-pigeon" in response.json()["details"]

    def test_unexpected_error_returns_500(self, client):
        app.dependency_overrides[get_transport_factory] = lambda: _failing_factory(RuntimeError("boom"))

        response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 500
        assert response.json() == {"error": "Mail failed", "details": "boom"}


# ===========================================================================
# App-level routes and limits
# ===========================================================================

class TestAppRoutes:
    def test_oversized_body_returns_413(self, client):
        with patch.dict(os.environ, {"MAX_BODY_BYTES": "10"}):
            response = client.post("/submit", json=PNG_SUBMISSION)

        assert response.status_code == 413
        assert response.json() == {"error": "Payload too large"}
        assert RecordingTransport.instances == []

    def test_landing_page(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "/submit" in response.text

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
