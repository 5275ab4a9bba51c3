"""Shared dummies for the service callback tests."""

from __future__ import annotations

from typing import Any

import pytest

from service_callback.config_loader import DeadLetterEmailConfig, ServiceSettings, SmtpConfig
from service_callback.core import CallbackService
from service_callback.notifier import DeadLetterNotifier

S2S_SECRET = "JBSWY3DPEHPK3PXP"


class DummyResponse:
    """Body may be str, or raw bytes decoded like aiohttp's ``text()``."""

    def __init__(self, status: int = 200, text: str | bytes = "", read_error: Exception | None = None):
        self.status = status
        self._text = text
        self.read_error = read_error

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def text(self, encoding: str = "utf-8", errors: str = "strict"):
        if self.read_error is not None:
            raise self.read_error
        if isinstance(self._text, bytes):
            return self._text.decode(encoding, errors)
        return self._text


class DummySession:
    """Stands in for aiohttp.ClientSession; results may be responses or exceptions."""

    def __init__(self):
        self.posts: list[tuple[str, Any]] = []
        self.puts: list[dict[str, Any]] = []
        self.post_result: DummyResponse | Exception = DummyResponse(200, "s2s-token")
        self.put_result: DummyResponse | Exception = DummyResponse(200, '{"amount": 3000000}')
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    @staticmethod
    def _result(result):
        if isinstance(result, Exception):
            raise result
        return result

    def post(self, url, json=None):
        self.posts.append((url, json))
        return self._result(self.post_result)

    def put(self, url, data=None, headers=None):
        self.puts.append({"url": url, "data": data, "headers": headers})
        return self._result(self.put_result)


class DummyMailer:
    def __init__(self):
        self.sent: list[tuple[SmtpConfig, Any]] = []
        self.raise_error: Exception | None = None

    async def __call__(self, config, message):
        if self.raise_error:
            raise self.raise_error
        self.sent.append((config, message))


def email_config(**overrides) -> DeadLetterEmailConfig:
    values = {
        "enabled": True,
        "smtp": SmtpConfig(host="smtp.local", port=25),
        "from_address": "callbacks@example.com",
        "to_address": "ops@example.com",
        "subject": "Service callback dead-lettered",
    }
    values.update(overrides)
    return DeadLetterEmailConfig(**values)


def make_settings(**overrides) -> ServiceSettings:
    values = {
        "connection_string": "memory://",
        "topic_name": "ccpay-service-callback-topic",
        "subscription_name": "serviceCallbackPremiumSubscription",
        "s2s_url": "http://s2s.local",
        "s2s_secret": S2S_SECRET,
        "microservice": "payment_app",
        "process_messages_count": 10,
        "delay_minutes": 20,
    }
    values.update(overrides)
    return ServiceSettings(**values)


@pytest.fixture
def session():
    return DummySession()


@pytest.fixture
def mailer():
    return DummyMailer()


@pytest.fixture
def make_service(session, mailer):
    def factory(bus, settings: ServiceSettings | None = None, **kwargs) -> CallbackService:
        settings = settings or make_settings()
        kwargs.setdefault("notifier", DeadLetterNotifier(settings.dead_letter_email, sender=mailer))
        return CallbackService(
            settings,
            bus_factory=lambda: bus,
            session_factory=lambda: session,
            **kwargs,
        )

    return factory
