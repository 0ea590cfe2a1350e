"""Alert channels for high-severity incidents.

- WebhookAlertChannel: Slack-compatible incoming webhook over httpx, with
  bounded exponential retries
- QueueAlertChannel: in-process asyncio.Queue, for workers and tests
- BackgroundAlertChannel: delivers through another channel from a worker
  task, so callers never wait on the webhook
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from triage_lib.models.history import NotificationMessage
from triage_lib.utils import create_custom_retry, is_transient_http_error

logger = logging.getLogger(__name__)

SEVERITY_EMOJI = {
    "CRITICAL": "🔴",
    "HIGH": "🟠",
    "MEDIUM": "🟡",
    "LOW": "🟢",
}


class AlertChannel(ABC):
    """Alert collaborator contract"""

    @abstractmethod
    async def send(self, notification: NotificationMessage) -> None:
        """Deliver the alert or raise"""


def build_slack_payload(
    notification: NotificationMessage, incident_base_url: Optional[str] = None
) -> Dict[str, Any]:
    """Render a notification as Slack Block Kit JSON"""
    emoji = SEVERITY_EMOJI.get(notification.severity, "⚪")
    blocks = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{emoji} {notification.severity} Incident: {notification.service}",
            },
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": notification.summary},
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": (
                        f"Incident `{notification.incident_id}` | "
                        f"{notification.timestamp.isoformat()}"
                    ),
                }
            ],
        },
    ]

    if incident_base_url:
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View Incident"},
                        "url": f"{incident_base_url.rstrip('/')}/{notification.incident_id}",
                    }
                ],
            }
        )

    return {"text": f"{notification.severity} incident in {notification.service}", "blocks": blocks}


class WebhookAlertChannel(AlertChannel):
    """Posts alerts to a Slack-compatible webhook.

    Usage:
        channel = WebhookAlertChannel(settings.alerts.webhook_url)
        await channel.send(notification)
    """

    def __init__(
        self,
        webhook_url: str,
        incident_base_url: Optional[str] = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        min_wait: float = 1,
        max_wait: float = 8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not webhook_url:
            raise ValueError("webhook_url is required")
        self.webhook_url = webhook_url
        self.incident_base_url = incident_base_url
        self.timeout = timeout
        self._transport = transport
        self._post = create_custom_retry(
            max_attempts=max_attempts,
            min_wait=min_wait,
            max_wait=max_wait,
            retry_on=is_transient_http_error,
        )(self._post_once)

        logger.info(f"Initialized {self.__class__.__name__} (max_attempts={max_attempts})")

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _post_once(self, payload: Dict[str, Any]) -> None:
        async with self._get_client() as client:
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()

    async def send(self, notification: NotificationMessage) -> None:
        payload = build_slack_payload(notification, self.incident_base_url)
        await self._post(payload)
        logger.info(
            f"Alert sent for incident {notification.incident_id} ({notification.severity})"
        )


class QueueAlertChannel(AlertChannel):
    """Puts alerts on an asyncio.Queue for a consumer task"""

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    async def send(self, notification: NotificationMessage) -> None:
        await self.queue.put(notification)


class BackgroundAlertChannel(AlertChannel):
    """Queues alerts for a worker task that delivers them through another channel.

    send() returns as soon as the alert is queued, so a slow or retrying
    webhook never holds up the turn that produced the diagnosis. Delivery
    failures are logged by the worker. send() only raises when the queue
    is full.
    """

    def __init__(self, channel: AlertChannel, max_pending: int = 100):
        self.channel = channel
        self.max_pending = max_pending
        self.delivered = 0
        self.failed = 0
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    async def send(self, notification: NotificationMessage) -> None:
        if self._worker is None or self._worker.done():
            self._queue = asyncio.Queue(maxsize=self.max_pending)
            self._worker = asyncio.create_task(self._deliver_forever())

        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            logger.error(
                f"Alert queue full ({self.max_pending} pending), "
                f"dropping alert for incident {notification.incident_id}"
            )
            raise

    async def _deliver_forever(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self.channel.send(notification)
                self.delivered += 1
            except Exception as e:
                self.failed += 1
                logger.warning(f"Alert delivery failed for incident {notification.incident_id}: {e}")
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued alert has been delivered or has failed"""
        if self._queue is not None and self._worker is not None and not self._worker.done():
            await self._queue.join()

    async def aclose(self) -> None:
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
