"""
Notifier — best-effort messages through the external ``notify`` command.

    notify --channel slack "🎉 demo 1.2.0 deployed"

A notification that cannot be delivered is logged and reported as
``False``; it never changes the outcome of the pipeline it describes.
"""

from __future__ import annotations

import logging

from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.models.action import Action

logger = logging.getLogger(__name__)

# Logical channel → name understood by the notify command
CHANNELS = {
    "chat": "slack",
    "mail": "email",
}


class Notifier:
    """Sends messages on the configured channels."""

    def __init__(
        self,
        registry: AdapterRegistry,
        command: str = "notify",
        channels: list[str] | None = None,
        timeout: int = 30,
    ):
        self._registry = registry
        self._command = command
        self._channels = list(channels) if channels is not None else ["chat"]
        self._timeout = timeout

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    def notify(self, channel: str, message: str) -> bool:
        """Send one message. Returns whether it was delivered."""
        target = CHANNELS.get(channel)
        if target is None:
            logger.warning("Unknown notification channel '%s'", channel)
            return False

        action = Action(
            id="notify",
            adapter="shell",
            params={
                "argv": [self._command, "--channel", target, message],
                "timeout": self._timeout,
            },
        )
        try:
            receipt = self._registry.execute_action(action)
        except Exception as e:
            logger.warning("Notification on %s raised: %s", channel, e)
            return False
        if receipt.failed:
            logger.warning("Notification on %s failed: %s", channel, receipt.error)
            return False
        logger.debug("Notified %s: %s", channel, message)
        return True

    def broadcast(self, message: str) -> bool:
        """Send ``message`` on every configured channel."""
        results = [self.notify(channel, message) for channel in self._channels]
        return all(results)


class NullNotifier(Notifier):
    """Notifier that drops every message (notifications disabled)."""

    def __init__(self) -> None:
        self._channels = []

    def notify(self, channel: str, message: str) -> bool:
        logger.debug("Notification suppressed (%s): %s", channel, message)
        return True
