"""Delivery of verification codes to account addresses."""
from __future__ import annotations

import logging
from typing import Protocol

from .errors import NotificationError

logger = logging.getLogger("quicktalk.notifier")


class Notifier(Protocol):
    def notify(self, address: str, code: str) -> None:
        """Deliver ``code`` to ``address`` or raise :class:`NotificationError`."""


class LoggingNotifier:
    """Development notifier that writes codes to the service log instead of mailing them."""

    def __init__(self, *, product_name: str = "QuickTalk") -> None:
        self._product_name = product_name

    def notify(self, address: str, code: str) -> None:
        if not address:
            raise NotificationError("Cannot deliver a code without an address")
        logger.info("Mock email to %s: your %s code is %s", address, self._product_name, code)


__all__ = ["LoggingNotifier", "Notifier", "NotificationError"]
