"""
Piracy alert delivery.

Notifiers are fire-and-forget: notify() returns immediately and never raises.
Delivery failures are logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable

import requests

if TYPE_CHECKING:
    from keybind.common.config import Config
    from keybind.common.interfaces import IPiracyNotifier
    from keybind.common.models import PiracyAlert

logger = logging.getLogger(__name__)

DISCORD_RED = 0xFF0000


def format_discord(alert: PiracyAlert) -> dict[str, Any]:
    """Discord webhook body with a single embed."""
    fields = [
        ("License", alert.license_key),
        ("Holder", alert.holder_name),
        ("Office", alert.office_name or "-"),
        ("Bound domain", f"`{alert.bound_domain}`"),
        ("Attempted domain", f"`{alert.attempted_domain}`"),
        ("Attempted IP", f"`{alert.attempted_ip}`"),
        ("Attempt #", str(alert.attempt_count)),
    ]
    return {
        "content": "**PIRACY ATTEMPT DETECTED**",
        "embeds": [
            {
                "color": DISCORD_RED,
                "title": "Unauthorized license use",
                "fields": [
                    {"name": name, "value": value, "inline": True}
                    for name, value in fields
                ],
                "timestamp": alert.timestamp,
                "footer": {"text": "keybind license server"},
            }
        ],
    }


def format_telegram(alert: PiracyAlert) -> dict[str, Any]:
    """Telegram sendMessage body in Markdown."""
    text = (
        "*PIRACY ATTEMPT DETECTED*\n\n"
        f"License: `{alert.license_key}`\n"
        f"Holder: {alert.holder_name}\n"
        f"Office: {alert.office_name or '-'}\n"
        f"Bound domain: `{alert.bound_domain}`\n"
        f"Attempted domain: `{alert.attempted_domain}`\n"
        f"IP: `{alert.attempted_ip}`\n"
        f"Attempt #{alert.attempt_count}"
    )
    return {"text": text, "parse_mode": "Markdown"}


def format_generic(alert: PiracyAlert) -> dict[str, Any]:
    return {"event": "piracy_attempt", **alert.model_dump(by_alias=True)}


FORMATTERS: tuple[tuple[str, Callable[[PiracyAlert], dict[str, Any]]], ...] = (
    ("discord.com", format_discord),
    ("api.telegram.org", format_telegram),
)


def select_formatter(webhook_url: str) -> Callable[[PiracyAlert], dict[str, Any]]:
    """Pick the payload format from the webhook host."""
    for marker, formatter in FORMATTERS:
        if marker in webhook_url:
            return formatter
    return format_generic


class NullNotifier:
    """Used when no alert channel is configured."""

    def notify(self, alert: PiracyAlert) -> None:
        logger.debug("No piracy notifier configured, dropping alert")


class LoggingNotifier:
    """Writes alerts to the log instead of an external channel."""

    def notify(self, alert: PiracyAlert) -> None:
        logger.warning("Piracy alert: %s", alert.model_dump_json(by_alias=True))


class WebhookNotifier:
    """Posts alerts to a webhook from a background worker."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 5.0,
        executor: ThreadPoolExecutor | None = None,
        max_pending: int = 100,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.formatter = select_formatter(webhook_url)
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="piracy-notifier"
        )
        self._pending = threading.BoundedSemaphore(max_pending)

    def notify(self, alert: PiracyAlert) -> None:
        if not self._pending.acquire(blocking=False):
            logger.warning(
                "Piracy alert backlog full, alert for %s dropped", alert.license_key
            )
            return
        try:
            self._executor.submit(self._deliver_logged, alert)
        except RuntimeError:
            self._pending.release()
            logger.warning(
                "Notifier is shut down, piracy alert for %s not sent",
                alert.license_key,
            )

    def _deliver_logged(self, alert: PiracyAlert) -> None:
        try:
            self.deliver(alert)
        except Exception:
            logger.exception("Unexpected error sending piracy alert")
        finally:
            self._pending.release()

    def deliver(self, alert: PiracyAlert) -> bool:
        """Send one alert synchronously. Returns False on failure."""
        payload = self.formatter(alert)
        try:
            response = requests.post(
                self.webhook_url, json=payload, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(
                "Failed to send piracy alert for %s: %s", alert.license_key, e
            )
            return False
        logger.info("Piracy alert sent for %s", alert.license_key)
        return True

    def shutdown(self, wait: bool = True) -> None:  # noqa: FBT001, FBT002
        """Stop the worker pool. Without wait, queued alerts are discarded."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)


def build_notifier(config: Config) -> IPiracyNotifier:
    """Choose a notifier backend from PIRACY_WEBHOOK_URL.

    Unset means no alerts, ``log`` means alerts go to the log, anything else
    is treated as a webhook URL.
    """
    url = config.PIRACY_WEBHOOK_URL
    if not url:
        return NullNotifier()
    if url == "log":
        return LoggingNotifier()
    return WebhookNotifier(
        url,
        timeout=config.NOTIFIER_TIMEOUT,
        max_pending=config.NOTIFIER_MAX_PENDING,
    )
