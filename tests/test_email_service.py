"""Tests for the email dispatcher and the SMTP connection pool."""

import asyncio

import aiosmtplib
import pytest

from app.exceptions import ConfigurationError, DeliveryFailedError, TransportError
from app.services.email_service import EmailMessage, EmailService, strip_tags
from app.services.smtp_pool import SmtpConfig, SMTPConnectionPool
from app.utils.retry import RetryPolicy

CONFIG = SmtpConfig(host="smtp.example.com", port=587, username="events@example.com", secret="app-password")


class FakeTransport:
    """Records messages; fails the first ``failures`` sends."""

    def __init__(self, failures: int = 0, error: Exception | None = None, delay: float = 0):
        self.failures = failures
        self.error = error or TransportError("Connection refused")
        self.delay = delay
        self.messages = []
        self.calls = 0
        self.closed = False

    async def send_message(self, message):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.failures:
            raise self.error
        self.messages.append(message)

    async def close(self):
        self.closed = True


class Recorder:
    def __init__(self):
        self.sleeps = []

    async def sleep(self, seconds):
        self.sleeps.append(seconds)


def make_service(transport, config=CONFIG, **kwargs):
    recorder = Recorder()
    service = EmailService(config, transport=transport, sleep=recorder.sleep, **kwargs)
    return service, recorder


def parts(mime):
    return {part.get_content_type(): part.get_payload(decode=True).decode() for part in mime.get_payload()}


MESSAGE = EmailMessage(
    recipient="participant@example.com",
    subject="Registration confirmed",
    html_body="<h1>Welcome</h1><p>See you at the <b>hackathon</b>.</p>",
)


def test_strip_tags():
    assert strip_tags("<p>Hello <b>there</b></p>") == "Hello there"


def test_secure_only_on_port_465():
    assert SmtpConfig(host="h", port=465).secure is True
    assert SmtpConfig(host="h", port=587).secure is False


@pytest.mark.parametrize("missing", ["host", "username", "secret"])
async def test_missing_config_fails_before_any_attempt(missing):
    config = SmtpConfig(**{**CONFIG.__dict__, missing: ""})
    transport = FakeTransport()
    service, recorder = make_service(transport, config=config)

    with pytest.raises(ConfigurationError) as exc_info:
        await service.send(MESSAGE)

    assert exc_info.value.missing == [missing]
    assert transport.calls == 0
    assert recorder.sleeps == []


async def test_send_returns_message_id_and_derives_text():
    transport = FakeTransport()
    service, recorder = make_service(transport)

    message_id = await service.send(MESSAGE)

    assert transport.calls == 1
    assert recorder.sleeps == []
    mime = transport.messages[0]
    assert mime["Message-ID"] == message_id
    assert message_id.endswith("@example.com>")
    assert mime["To"] == "participant@example.com"
    assert mime["From"] == "EventDesk <events@example.com>"
    bodies = parts(mime)
    assert bodies["text/plain"] == "WelcomeSee you at the hackathon."
    assert bodies["text/html"] == MESSAGE.html_body


async def test_explicit_text_body_is_kept():
    transport = FakeTransport()
    service, _ = make_service(transport)

    await service.send(EmailMessage("a@example.com", "Hi", "<p>Hi</p>", text_body="Plain hi"))

    assert parts(transport.messages[0])["text/plain"] == "Plain hi"


async def test_always_failing_transport_uses_full_retry_budget():
    transport = FakeTransport(failures=100)
    service, recorder = make_service(transport)

    with pytest.raises(DeliveryFailedError) as exc_info:
        await service.send(MESSAGE)

    assert transport.calls == 3
    assert recorder.sleeps == [2.0, 4.0]
    error = exc_info.value
    assert error.attempts == 3
    assert isinstance(error.last_error, TransportError)
    assert error.__cause__ is error.last_error
    assert error.message == "Email delivery failed: Connection refused"


async def test_authentication_errors_are_retried_too():
    auth_error = TransportError("(535, 'Username and Password not accepted')")
    transport = FakeTransport(failures=100, error=auth_error)
    service, recorder = make_service(transport)

    with pytest.raises(DeliveryFailedError):
        await service.send(MESSAGE)

    assert transport.calls == 3


async def test_recovers_on_third_attempt():
    transport = FakeTransport(failures=2)
    service, recorder = make_service(transport)

    await service.send(MESSAGE)

    assert transport.calls == 3
    assert recorder.sleeps == [2.0, 4.0]
    assert len(transport.messages) == 1


async def test_slow_attempts_time_out_and_are_retried():
    transport = FakeTransport(delay=5)
    service, recorder = make_service(transport, attempt_timeout=0.01)

    with pytest.raises(DeliveryFailedError) as exc_info:
        await service.send(MESSAGE)

    assert transport.calls == 3
    assert recorder.sleeps == [2.0, 4.0]
    assert isinstance(exc_info.value.last_error, TimeoutError)
    assert "timed out after 10ms" in exc_info.value.message


async def test_retry_policy_is_configurable():
    transport = FakeTransport(failures=100)
    service, recorder = make_service(transport, retry_policy=RetryPolicy(max_attempts=2, base_delay_ms=100))

    with pytest.raises(DeliveryFailedError):
        await service.send(MESSAGE)

    assert transport.calls == 2
    assert recorder.sleeps == [0.1]


async def test_registration_confirmation_template():
    transport = FakeTransport()
    service, _ = make_service(transport)

    await service.send_registration_confirmation(
        to="participant@example.com",
        participant_name="Asha",
        event_name="Code Sprint",
        registration_id="REG-0042",
    )

    mime = transport.messages[0]
    assert mime["Subject"] == "Registration confirmed: Code Sprint"
    html = parts(mime)["text/html"]
    assert "Asha" in html
    assert "REG-0042" in html


async def test_close_releases_transport():
    transport = FakeTransport()
    service, _ = make_service(transport)

    await service.close()

    assert transport.closed


class FakeSMTP:
    """Stands in for aiosmtplib.SMTP inside the pool."""

    instances = []

    def __init__(self, fail_send: bool = False, connect_delay: float = 0):
        self.is_connected = False
        self.fail_send = fail_send
        self.connect_delay = connect_delay
        self.sent = 0
        self.closed = False
        self.quit_called = False
        FakeSMTP.instances.append(self)

    async def connect(self):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        self.is_connected = True

    async def send_message(self, message):
        if self.fail_send:
            raise aiosmtplib.SMTPServerDisconnected("Connection lost")
        self.sent += 1

    def close(self):
        self.is_connected = False
        self.closed = True

    async def quit(self):
        self.quit_called = True
        self.is_connected = False


@pytest.fixture
def fake_pool(monkeypatch):
    FakeSMTP.instances = []

    def factory(max_messages=100, fail_send=False, connect_delay=0):
        pool = SMTPConnectionPool(CONFIG, max_connections=2, max_messages=max_messages)
        monkeypatch.setattr(pool, "_new_client", lambda: FakeSMTP(fail_send=fail_send, connect_delay=connect_delay))
        return pool

    return factory


async def test_pool_reuses_connections(fake_pool):
    pool = fake_pool()

    for _ in range(3):
        await pool.send_message(object())

    assert len(FakeSMTP.instances) == 1
    assert FakeSMTP.instances[0].sent == 3


async def test_pool_retires_connection_after_max_messages(fake_pool):
    pool = fake_pool(max_messages=2)

    for _ in range(3):
        await pool.send_message(object())

    assert len(FakeSMTP.instances) == 2
    assert FakeSMTP.instances[0].closed


async def test_pool_wraps_smtp_errors_and_discards_connection(fake_pool):
    pool = fake_pool(fail_send=True)

    with pytest.raises(TransportError, match="Connection lost"):
        await pool.send_message(object())

    assert FakeSMTP.instances[0].closed


async def test_pool_close_quits_idle_connections(fake_pool):
    pool = fake_pool()
    await pool.send_message(object())

    await pool.close()

    assert FakeSMTP.instances[0].quit_called


async def test_pool_closes_client_cancelled_during_connect(fake_pool):
    pool = fake_pool(connect_delay=10)

    with pytest.raises(TimeoutError):
        await asyncio.wait_for(pool.send_message(object()), timeout=0.05)

    assert FakeSMTP.instances[0].closed
    assert pool._idle == []


def test_connect_timeout_is_shorter_than_attempt_timeout():
    service = EmailService(CONFIG)

    assert CONFIG.connect_timeout < service.attempt_timeout


async def test_verify_logs_in_and_quits(fake_pool):
    pool = fake_pool()

    await pool.verify()

    client = FakeSMTP.instances[0]
    assert client.quit_called
    assert pool._idle == []


async def test_verify_wraps_connect_failure(monkeypatch):
    class RefusingSMTP(FakeSMTP):
        async def connect(self):
            raise aiosmtplib.SMTPAuthenticationError(535, "Username and Password not accepted")

    FakeSMTP.instances = []
    pool = SMTPConnectionPool(CONFIG)
    monkeypatch.setattr(pool, "_new_client", RefusingSMTP)

    with pytest.raises(TransportError, match="not accepted"):
        await pool.verify()

    assert FakeSMTP.instances[0].closed
