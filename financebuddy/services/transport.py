"""
Outbound text delivery for the messaging channel (WhatsApp Cloud API).
"""

import logging
from typing import Protocol

import httpx

from financebuddy.config import WHATSAPP_ACCESS_TOKEN, WHATSAPP_API_ENDPOINT

logger = logging.getLogger(__name__)


class TransportSender(Protocol):
    async def send(self, recipient: str, text: str) -> bool: ...


class WhatsAppSender:
    REQUEST_TIMEOUT = 10.0

    def __init__(
        self,
        api_endpoint: str = WHATSAPP_API_ENDPOINT,
        access_token: str = WHATSAPP_ACCESS_TOKEN,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_endpoint = api_endpoint.rstrip("/")
        self.access_token = access_token
        self._client = client

    async def send(self, recipient: str, text: str) -> bool:
        if not self.api_endpoint:
            logger.warning("WHATSAPP_API_ENDPOINT not configured, dropping message to %s", recipient)
            return False

        payload = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "text",
            "text": {"body": text},
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            if self._client is not None:
                response = await self._client.post(
                    f"{self.api_endpoint}/messages", json=payload, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
                    response = await client.post(
                        f"{self.api_endpoint}/messages", json=payload, headers=headers
                    )
        except httpx.HTTPError as exc:
            logger.error("Sending message to %s failed: %s", recipient, exc)
            return False

        if response.is_success:
            return True
        logger.error(
            "Transport rejected message to %s: HTTP %s %s",
            recipient,
            response.status_code,
            response.text[:200],
        )
        return False
