"""Run-report notification providers.

NullNotificationProvider is the default; WebhookNotificationProvider is
used when NOTIFICATION_WEBHOOK_URL is set.
"""

from filerepo.providers.notification.null_notification_provider import NullNotificationProvider
from filerepo.providers.notification.webhook_notification_provider import (
    WebhookNotificationProvider,
)

__all__ = ["NullNotificationProvider", "WebhookNotificationProvider"]
