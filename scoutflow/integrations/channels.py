"""Channel-sending capability.

The engine never talks to a messaging network directly. It hands a
resolved contact, a channel and a rendered message to a ChannelSender and
gets a DeliveryOutcome back.

Implementations:
    - DryRunChannelSender: logs messages, sends nothing (default)
    - WebhookChannelSender: POSTs to a messaging gateway over HTTP

Usage:
    from scoutflow.integrations.channels import create_channel_sender

    sender = create_channel_sender()
    outcome = sender.send("+639171234567", Channel.SMS, "Hi Ana!")
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

import requests  # type: ignore[import-untyped]

from scoutflow.core.config import Config, get_config
from scoutflow.core.exceptions import IntegrationError
from scoutflow.core.logging import get_logger
from scoutflow.db.models import Channel
from scoutflow.integrations.base import IntegrationBase, RateLimiter

logger = get_logger(__name__)


@dataclass
class DeliveryOutcome:
    """Result of one send.

    Attributes:
        success: Gateway accepted the message
        message_id: Gateway's id for the message, if any
        error: Failure description
        retryable: Whether sending again might succeed
    """

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = True


class ChannelSender(IntegrationBase):
    """Sends a rendered message to one contact on one channel."""

    @abstractmethod
    def send(self, contact: str, channel: Union[str, Channel], message: str) -> DeliveryOutcome:
        """Deliver a message.

        Args:
            contact: Channel-specific address (messenger id, phone, email)
            channel: messenger, sms or email
            message: Rendered message text
        """
        pass


class DryRunChannelSender(ChannelSender):
    """Logs every message instead of sending it.

    Delivered messages are kept in ``sent`` for inspection.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, Channel, str]] = []

    def health_check(self) -> bool:
        return True

    def is_configured(self) -> bool:
        return True

    def send(self, contact: str, channel: Union[str, Channel], message: str) -> DeliveryOutcome:
        resolved = Channel(channel)
        self.sent.append((contact, resolved, message))
        logger.info(
            "Dry run: message not sent",
            extra={"context": {"channel": resolved.value, "contact": contact, "length": len(message)}},
        )
        return DeliveryOutcome(success=True, message_id=f"dry-run-{len(self.sent)}")


class _RetryableGatewayError(Exception):
    """Gateway answered with a 5xx or 429."""


class WebhookChannelSender(ChannelSender):
    """Messaging gateway client.

    POSTs ``{"channel", "recipient", "message"}`` as JSON with a bearer
    token. Connection errors, timeouts, 429 and 5xx responses are retried
    with exponential backoff; other 4xx responses fail immediately and are
    not retryable.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        calls_per_minute: int = 60,
        retry_base_delay: float = 1.0,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._rate_limiter = RateLimiter(calls_per_minute=calls_per_minute)

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "WebhookChannelSender":
        config = config or get_config()
        if not config.gateway_url:
            raise IntegrationError("MESSAGING_GATEWAY_URL not configured")
        return cls(
            url=config.gateway_url,
            token=config.gateway_token,
            timeout=config.send_timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def is_configured(self) -> bool:
        return bool(self.url)

    def health_check(self) -> bool:
        """Gateway answers without a server error."""
        if not self.is_configured():
            return False
        try:
            response = requests.get(self.url, headers=self._headers(), timeout=self.timeout)
            return bool(response.status_code < 500)
        except requests.RequestException:
            return False

    def send(self, contact: str, channel: Union[str, Channel], message: str) -> DeliveryOutcome:
        resolved = Channel(channel)
        payload = {"channel": resolved.value, "recipient": contact, "message": message}

        def _post() -> requests.Response:
            self._rate_limiter.wait_if_needed()
            response = requests.post(
                self.url, json=payload, headers=self._headers(), timeout=self.timeout
            )
            if response.status_code == 429 or response.status_code >= 500:
                raise _RetryableGatewayError(
                    f"Gateway error ({response.status_code}): {response.text[:200]}"
                )
            return response

        try:
            response = self.with_retry(
                _post,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                exceptions=(requests.ConnectionError, requests.Timeout, _RetryableGatewayError),
            )
        except IntegrationError as e:
            logger.warning(
                "Gateway send failed",
                extra={"context": {"channel": resolved.value, "error": str(e)}},
            )
            return DeliveryOutcome(success=False, error=str(e), retryable=True)
        except requests.RequestException as e:
            return DeliveryOutcome(success=False, error=f"Gateway request error: {e}", retryable=False)

        if response.status_code >= 400:
            return DeliveryOutcome(
                success=False,
                error=f"Gateway rejected message ({response.status_code}): {response.text[:200]}",
                retryable=False,
            )

        message_id = None
        try:
            data = response.json()
            if isinstance(data, dict) and data.get("id") is not None:
                message_id = str(data["id"])
        except ValueError:
            pass

        logger.info(
            "Message sent via gateway",
            extra={"context": {"channel": resolved.value, "message_id": message_id}},
        )
        return DeliveryOutcome(success=True, message_id=message_id)


def create_channel_sender(config: Optional[Config] = None) -> ChannelSender:
    """Gateway sender when configured, otherwise dry run."""
    config = config or get_config()
    if config.dry_run or not config.gateway_url:
        return DryRunChannelSender()
    return WebhookChannelSender.from_config(config)
