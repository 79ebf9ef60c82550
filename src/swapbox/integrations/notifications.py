"""Notification sink that writes to the application log."""

from __future__ import annotations

import logging

from swapbox.domain import UserId

from .interfaces import NotificationSink

logger = logging.getLogger(__name__)


class LoggingNotificationSink(NotificationSink):
    """Default sink when no notification service is configured."""

    async def send(self, user_id: UserId, text: str) -> None:
        logger.info("Notify user %s: %s", user_id, text)


__all__ = ["LoggingNotificationSink"]
