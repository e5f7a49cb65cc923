"""Tests for the contact form and waitlist notifications."""

import json

import httpx
import pytest

from app.config.settings import Settings
from app.main import app
from app.modules.contact.routes import get_email_service
from app.modules.contact.service import EmailService

CONTACT = {"name": "Sam <b>Bold</b>", "email": "sam@example.com", "message": "Hello team,\nplease call me back."}


@pytest.fixture
def resend():
    sent = []
    state = {"status": 200}

    def handler(request):
        sent.append(request)
        return httpx.Response(state["status"], json={"id": "email-1"})

    state["sent"] = sent
    state["transport"] = httpx.MockTransport(handler)
    return state


@pytest.fixture
def mailer(client, resend):
    email_settings = Settings(resend_api_key="re_test", contact_email="team@example.com")
    app.dependency_overrides[get_email_service] = lambda: EmailService(email_settings, transport=resend["transport"])
    yield
    app.dependency_overrides.pop(get_email_service, None)


def test_contact_forwards_escaped_message(client, mailer, resend):
    response = client.post("/api/contact", json=CONTACT)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Message sent successfully"}

    request = resend["sent"][0]
    assert str(request.url) == "https://api.resend.com/emails"
    assert request.headers["authorization"] == "Bearer re_test"
    payload = json.loads(request.content)
    assert payload["to"] == "team@example.com"
    assert payload["reply_to"] == "sam@example.com"
    assert payload["subject"] == "New Contact Form Submission from Sam <b>Bold</b>"
    assert "Sam &lt;b&gt;Bold&lt;/b&gt;" in payload["html"]
    assert "Hello team,<br>please call me back." in payload["html"]
    assert "Message:\nHello team," in payload["text"]


def test_waitlist(client, mailer, resend):
    response = client.post("/api/waitlist", json={"name": "Ada", "email": "ada@example.com"})

    assert response.json() == {"success": True, "message": "Successfully joined waitlist"}
    assert json.loads(resend["sent"][0].content)["subject"] == "New Waitlist Signup: Ada"


@pytest.mark.parametrize("body", [
    {"name": "", "email": "sam@example.com", "message": "Long enough message"},
    {"name": "Sam", "email": "not-an-email", "message": "Long enough message"},
    {"name": "Sam", "email": "sam@example.com", "message": "short"},
])
def test_contact_validation(client, mailer, resend, body):
    response = client.post("/api/contact", json=body)

    assert response.status_code == 400
    assert resend["sent"] == []


def test_resend_failure_is_email_error(client, mailer, resend):
    resend["status"] = 422

    response = client.post("/api/contact", json=CONTACT)

    assert response.status_code == 500
    assert response.json() == {"error": "EMAIL_ERROR", "message": "Failed to send message. Please try again."}


def test_unconfigured_email_service(client, resend):
    app.dependency_overrides[get_email_service] = lambda: EmailService(Settings(resend_api_key=None), transport=resend["transport"])
    try:
        response = client.post("/api/waitlist", json={"name": "Ada", "email": "ada@example.com"})
    finally:
        app.dependency_overrides.pop(get_email_service, None)

    assert response.status_code == 500
    assert response.json()["message"] == "Email service not configured"
    assert resend["sent"] == []


def test_contact_is_rate_limited_per_ip(client, mailer):
    statuses = [client.post("/api/contact", json=CONTACT).status_code for _ in range(6)]

    assert statuses == [200] * 5 + [429]
    blocked = client.post("/api/contact", json=CONTACT)
    assert blocked.json()["error"] == "RATE_LIMIT_EXCEEDED"
    assert int(blocked.headers["Retry-After"]) > 0
