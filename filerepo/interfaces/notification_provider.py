"""Abstract base class for run-report notification providers."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: NullNotificationProvider (default),
# WebhookNotificationProvider (filerepo/providers/notification/)
class INotificationProvider(ABC):
    """Contract for delivering a run report."""

    @abstractmethod
    async def send(self, subject: str, body: str) -> bool:
        """Deliver a report.  Returns ``True`` if it was sent.

        Delivery failures are reported through the return value; the run
        coordinator logs them and never fails a run because of them.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"webhook"``."""
