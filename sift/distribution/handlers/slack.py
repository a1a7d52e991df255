"""
Slack Handler

Posts rendered messages to a Slack incoming webhook.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ...common.errors import DeliveryError
from ...common.schemas.knowledge_record import utcnow
from .base import BaseHandler, DeliveryResult, Message

logger = logging.getLogger("sift.distribution.handlers.slack")


class SlackHandler(BaseHandler):
    """
    Handler for Slack incoming webhooks.

    One POST per message, no retry; failures come back in the
    DeliveryResult so the caller decides what to do.
    """

    def __init__(
        self,
        webhook_url: str = "",
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize Slack handler.

        Args:
            webhook_url: Incoming webhook URL
            http_client: Injected httpx client (tests use MockTransport)
            timeout: Request timeout in seconds
        """
        super().__init__("team")
        self._webhook_url = webhook_url
        self._http = http_client or httpx.Client(timeout=timeout)

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    def post(self, payload: Dict[str, Any]) -> int:
        """
        POST a payload to the webhook.

        Returns:
            HTTP status code

        Raises:
            DeliveryError: network failure or non-2xx response
        """
        try:
            response = self._http.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Slack webhook request failed: {e}") from e

        if response.status_code >= 300:
            raise DeliveryError(
                f"Slack webhook returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.status_code

    def deliver(self, message: Message) -> DeliveryResult:
        if not self.is_configured:
            logger.error("Slack webhook not configured")
            return DeliveryResult(
                ok=False,
                channel=self.channel_name,
                record_id=message.record_id,
                error="Slack webhook not configured",
            )

        try:
            status = self.post(message.to_payload())
        except DeliveryError as e:
            logger.error("Failed to post %s to Slack: %s", message.record_id, e)
            return DeliveryResult(
                ok=False,
                channel=self.channel_name,
                record_id=message.record_id,
                status_code=e.status_code,
                error=str(e),
            )

        logger.info("Posted %s to Slack", message.record_id)
        return DeliveryResult(
            ok=True,
            channel=self.channel_name,
            record_id=message.record_id,
            status_code=status,
            delivered_at=utcnow(),
        )
