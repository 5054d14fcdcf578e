"""Outbound message senders.

The dispatcher and the digest scheduler only depend on the
OutboundSender interface; HttpEmailSender posts to an HTTP mail relay.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from aquaguard.config.settings import get_settings

logger = logging.getLogger(__name__)


class OutboundSender(ABC):
    """Abstract base for outbound delivery."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and breaker names."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> bool:
        """Deliver a message.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class HttpEmailSender(OutboundSender):
    """Sends plain-text email through an HTTP mail relay.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(
        self,
        url: str,
        from_address: str,
        token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._from = from_address
        self._timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    @property
    def name(self) -> str:
        return "email"

    async def send(self, to: str, subject: str, body: str) -> bool:
        payload = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "text": body,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=payload, headers=self._headers)
                if resp.is_success:
                    return True
                logger.warning(
                    "Mail relay %s returned %d for %s", self._url, resp.status_code, to,
                )
                return False
        except httpx.TimeoutException:
            logger.warning("Mail relay %s timed out for %s", self._url, to)
            return False
        except httpx.HTTPError as e:
            logger.warning("Mail relay %s failed for %s: %s", self._url, to, e)
            return False


def create_sender() -> OutboundSender:
    """Build the outbound sender from application settings."""
    settings = get_settings()
    if not settings.mail_configured:
        logger.warning("Mail relay token not configured, sending unauthenticated")
    return HttpEmailSender(
        url=settings.mail_api_url,
        from_address=settings.mail_from_address,
        token=settings.mail_api_token,
        timeout=settings.mail_timeout_seconds,
    )
