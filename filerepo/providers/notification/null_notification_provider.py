"""No-op notification provider used when no delivery channel is configured."""

from __future__ import annotations

import structlog

from filerepo.interfaces.notification_provider import INotificationProvider

logger = structlog.get_logger(logger_name=__name__)


class NullNotificationProvider(INotificationProvider):
    """Logs the report subject and drops the report."""

    async def send(self, subject: str, body: str) -> bool:
        logger.info("report_not_sent", subject=subject, reason="no notifier configured")
        return False

    def get_provider_name(self) -> str:
        return "null"
