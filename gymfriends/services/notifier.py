"""User-facing alert and confirmation seam."""
from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def alert(self, title: str, message: str) -> None:
        """Show a blocking alert dialog."""
        ...

    async def confirm(self, title: str, message: str, *, confirm_label: str, cancel_label: str) -> bool:
        """Ask for explicit confirmation of a destructive action."""
        ...


class LoggingNotifier(Notifier):
    """Headless notifier: alerts go to the log and confirmations are declined."""

    async def alert(self, title: str, message: str) -> None:
        logger.info("Alert | title=%s message=%s", title, message)

    async def confirm(self, title: str, message: str, *, confirm_label: str, cancel_label: str) -> bool:
        logger.info("Confirmation declined without a UI | title=%s", title)
        return False


__all__ = ["Notifier", "LoggingNotifier"]
