import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from keybind.common.config import Config
from keybind.common.models import PiracyAlert
from keybind.server import notifier as notifier_module
from keybind.server.notifier import (
    DISCORD_RED,
    LoggingNotifier,
    NullNotifier,
    WebhookNotifier,
    build_notifier,
    format_discord,
    format_generic,
    format_telegram,
    select_formatter,
)


@pytest.fixture
def alert() -> PiracyAlert:
    return PiracyAlert(
        license_key="NTRS-AB12-****-****-WX34",
        holder_name="Budi",
        office_name="Kantor Notaris Budi",
        bound_domain="budi-notaris.com",
        attempted_domain="pirate-site.com",
        attempted_ip="10.0.0.9",
        user_agent="curl/8.0",
        attempt_count=2,
        timestamp="2026-01-01T12:00:00+00:00",
    )


class MockResponse:
    def __init__(self, status_code: int = 204):
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:  # noqa: PLR2004
            raise requests.HTTPError(f"{self.status_code} error")


class RecordingPost:
    def __init__(self, response: MockResponse | None = None, error: Exception | None = None):
        self.response = response or MockResponse()
        self.error = error
        self.calls: list[dict] = []

    def __call__(self, url: str, json: dict, timeout: float) -> MockResponse:
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


@pytest.mark.parametrize(
    ("url", "formatter"),
    [
        ("https://discord.com/api/webhooks/1/abc", format_discord),
        ("https://api.telegram.org/bot123/sendMessage?chat_id=1", format_telegram),
        ("https://hooks.example.com/piracy", format_generic),
    ],
)
def test_select_formatter(url: str, formatter) -> None:
    assert select_formatter(url) is formatter


def test_discord_payload(alert: PiracyAlert) -> None:
    payload = format_discord(alert)
    (embed,) = payload["embeds"]
    assert embed["color"] == DISCORD_RED
    assert embed["timestamp"] == alert.timestamp
    values = {field["name"]: field["value"] for field in embed["fields"]}
    assert values["License"] == "NTRS-AB12-****-****-WX34"
    assert values["Attempted domain"] == "`pirate-site.com`"
    assert values["Attempt #"] == "2"


def test_telegram_payload(alert: PiracyAlert) -> None:
    payload = format_telegram(alert)
    assert payload["parse_mode"] == "Markdown"
    assert "`budi-notaris.com`" in payload["text"]
    assert "Attempt #2" in payload["text"]


def test_generic_payload_is_camel_case(alert: PiracyAlert) -> None:
    payload = format_generic(alert)
    assert payload["event"] == "piracy_attempt"
    assert payload["licenseKey"] == alert.license_key
    assert payload["attemptedDomain"] == "pirate-site.com"
    assert payload["attemptCount"] == 2  # noqa: PLR2004


def test_deliver_posts_payload(monkeypatch: pytest.MonkeyPatch, alert: PiracyAlert) -> None:
    post = RecordingPost()
    monkeypatch.setattr(notifier_module.requests, "post", post)
    webhook = WebhookNotifier("https://hooks.example.com/piracy", timeout=2.5)
    try:
        assert webhook.deliver(alert) is True
    finally:
        webhook.shutdown()
    (call,) = post.calls
    assert call["url"] == "https://hooks.example.com/piracy"
    assert call["timeout"] == 2.5  # noqa: PLR2004
    assert call["json"]["licenseKey"] == alert.license_key


@pytest.mark.parametrize(
    "post",
    [
        RecordingPost(response=MockResponse(500)),
        RecordingPost(error=requests.ConnectionError("refused")),
        RecordingPost(error=requests.Timeout("slow")),
    ],
)
def test_deliver_failure_returns_false(
    monkeypatch: pytest.MonkeyPatch, alert: PiracyAlert, post: RecordingPost
) -> None:
    monkeypatch.setattr(notifier_module.requests, "post", post)
    webhook = WebhookNotifier("https://hooks.example.com/piracy")
    try:
        assert webhook.deliver(alert) is False
    finally:
        webhook.shutdown()


def test_notify_delivers_in_background(
    monkeypatch: pytest.MonkeyPatch, alert: PiracyAlert
) -> None:
    post = RecordingPost(error=requests.ConnectionError("refused"))
    monkeypatch.setattr(notifier_module.requests, "post", post)
    webhook = WebhookNotifier(
        "https://discord.com/api/webhooks/1/abc",
        executor=ThreadPoolExecutor(max_workers=1),
    )
    webhook.notify(alert)  # does not raise
    webhook.shutdown(wait=True)
    assert len(post.calls) == 1
    assert "embeds" in post.calls[0]["json"]


def test_notify_after_shutdown_is_dropped(
    monkeypatch: pytest.MonkeyPatch, alert: PiracyAlert
) -> None:
    post = RecordingPost()
    monkeypatch.setattr(notifier_module.requests, "post", post)
    webhook = WebhookNotifier("https://hooks.example.com/piracy")
    webhook.shutdown()
    webhook.notify(alert)
    assert post.calls == []


def test_logging_notifier(caplog: pytest.LogCaptureFixture, alert: PiracyAlert) -> None:
    with caplog.at_level("WARNING", logger="keybind.server.notifier"):
        LoggingNotifier().notify(alert)
    assert "pirate-site.com" in caplog.text


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        (None, NullNotifier),
        ("log", LoggingNotifier),
        ("https://hooks.example.com/piracy", WebhookNotifier),
    ],
)
def test_build_notifier(monkeypatch: pytest.MonkeyPatch, url: str | None, expected: type) -> None:
    if url is None:
        monkeypatch.delenv("KEYBIND_PIRACY_WEBHOOK_URL", raising=False)
    else:
        monkeypatch.setenv("KEYBIND_PIRACY_WEBHOOK_URL", url)
    built = build_notifier(Config())
    assert isinstance(built, expected)
    if isinstance(built, WebhookNotifier):
        built.shutdown()


def test_backlog_is_bounded(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture, alert: PiracyAlert
) -> None:
    release = threading.Event()
    post = RecordingPost()

    def slow_post(url: str, json: dict, timeout: float) -> MockResponse:
        release.wait(5)
        return post(url, json, timeout)

    monkeypatch.setattr(notifier_module.requests, "post", slow_post)
    webhook = WebhookNotifier(
        "https://hooks.example.com/piracy",
        executor=ThreadPoolExecutor(max_workers=1),
        max_pending=2,
    )
    with caplog.at_level("WARNING", logger="keybind.server.notifier"):
        for _ in range(3):
            webhook.notify(alert)
    assert "backlog full" in caplog.text

    release.set()
    webhook.shutdown(wait=True)
    assert len(post.calls) == 2  # noqa: PLR2004


def test_shutdown_without_wait_discards_queued_alerts(
    monkeypatch: pytest.MonkeyPatch, alert: PiracyAlert
) -> None:
    started = threading.Event()
    release = threading.Event()
    post = RecordingPost()

    def slow_post(url: str, json: dict, timeout: float) -> MockResponse:
        started.set()
        release.wait(5)
        return post(url, json, timeout)

    monkeypatch.setattr(notifier_module.requests, "post", slow_post)
    webhook = WebhookNotifier(
        "https://hooks.example.com/piracy", executor=ThreadPoolExecutor(max_workers=1)
    )
    for _ in range(3):
        webhook.notify(alert)
    assert started.wait(5)

    webhook.shutdown(wait=False)
    release.set()
    webhook._executor.shutdown(wait=True)  # noqa: SLF001
    assert len(post.calls) == 1
