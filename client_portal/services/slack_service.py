"""
Staff alerts over a Slack incoming webhook.

WHAT: Posts new inquiries, client responses and payment events to the
studio's Slack channel as Block Kit messages.

WHY: Staff react to a client accepting a proposal or paying an advance
without watching the dashboard. Slack is a side channel: the in-app
notification is the record, so a failed post never fails the request.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from client_portal.core.config import settings
from client_portal.core.exceptions import SlackNotificationError

logger = logging.getLogger(__name__)

# Slack rejects header blocks longer than this
HEADER_MAX_LENGTH = 150


@dataclass
class StaffAlert:
    """
    One portal event as staff see it in Slack.

    Attributes:
        title: Header line, e.g. "Proposal accepted"
        message: Body text (Slack mrkdwn)
        fields: Label/value pairs shown in two columns
        link_url: Portal page for the "Open in portal" button
    """

    title: str
    message: str
    fields: Dict[str, str] = field(default_factory=dict)
    link_url: Optional[str] = None

    @property
    def fallback_text(self) -> str:
        """Text shown in push notifications and clients without blocks."""
        return f"{self.title}: {self.message}"

    def to_blocks(self) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": self.title[:HEADER_MAX_LENGTH],
                    "emoji": True,
                },
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": self.message}},
        ]
        if self.fields:
            blocks.append(
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}
                        for label, value in self.fields.items()
                    ],
                }
            )
        if self.link_url:
            blocks.append(
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": "Open in portal", "emoji": True},
                            "url": self.link_url,
                            "action_id": "open_in_portal",
                        }
                    ],
                }
            )
        return blocks


class SlackService:
    """
    Incoming-webhook client.

    Attributes:
        webhook_url: Slack Incoming Webhook URL
        enabled: Master switch, off by default
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            webhook_url: Webhook URL (defaults to SLACK_WEBHOOK_URL)
            enabled: Defaults to SLACK_WEBHOOK_ENABLED
            timeout: Defaults to EXTERNAL_REQUEST_TIMEOUT_SECONDS
            transport: httpx transport override, used by tests
        """
        self.webhook_url = webhook_url or settings.SLACK_WEBHOOK_URL
        self.enabled = enabled if enabled is not None else settings.SLACK_WEBHOOK_ENABLED
        self.timeout = timeout or settings.EXTERNAL_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def active(self) -> bool:
        return bool(self.enabled and self.webhook_url)

    async def send(self, alert: StaffAlert) -> bool:
        """
        Post an alert.

        Returns:
            True if Slack accepted it, False if Slack is disabled or has
            no webhook URL

        Raises:
            SlackNotificationError: Slack answered with an error, timed out
                or could not be reached
        """
        if not self.active:
            logger.debug(f"Slack inactive, dropping alert '{alert.title}'")
            return False

        payload = {"text": alert.fallback_text, "blocks": alert.to_blocks()}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.TimeoutException as e:
            raise SlackNotificationError(
                message="Slack webhook request timed out", timeout=self.timeout
            ) from e
        except httpx.RequestError as e:
            raise SlackNotificationError(
                message="Failed to connect to Slack webhook", error=str(e)
            ) from e

        # Incoming webhooks answer a literal "ok" on success
        if response.status_code != 200 or response.text != "ok":
            raise SlackNotificationError(
                message="Slack webhook returned an error",
                response_status=response.status_code,
                response_text=response.text,
            )
        logger.info(f"Slack alert sent: {alert.title}")
        return True

    async def send_safe(self, alert: StaffAlert) -> bool:
        """Post an alert, logging instead of raising on failure."""
        try:
            return await self.send(alert)
        except SlackNotificationError as e:
            logger.error(f"Slack alert '{alert.title}' failed: {e.message}")
            return False
