"""Webhook notification provider.

POSTs the run report as JSON (``{"subject": ..., "body": ...}``) to a
configured URL.  Failures are logged and reported through the return
value; a broken webhook never fails an import run.
"""

from __future__ import annotations

import httpx
import structlog

from filerepo.interfaces.notification_provider import INotificationProvider

logger = structlog.get_logger(logger_name=__name__)


class WebhookNotificationProvider(INotificationProvider):
    """Deliver reports to an HTTP webhook.

    Parameters
    ----------
    url:
        Webhook endpoint.
    http_client:
        Optional shared ``httpx.AsyncClient``; a short-lived client is
        opened per delivery when omitted.
    timeout:
        Request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._url = url
        self._http = http_client
        self._timeout = timeout

    async def send(self, subject: str, body: str) -> bool:
        payload = {"subject": subject, "body": body}
        try:
            if self._http is not None:
                resp = await self._http.post(self._url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("report_webhook_failed", url=self._url, error=str(exc))
            return False

        if resp.is_success:
            logger.info("report_sent", url=self._url, subject=subject)
            return True

        logger.warning(
            "report_webhook_rejected",
            url=self._url,
            status_code=resp.status_code,
            body=resp.text[:200],
        )
        return False

    def get_provider_name(self) -> str:
        return "webhook"
