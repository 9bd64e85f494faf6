"""WhatsApp delivery through the Green API gateway."""

from __future__ import annotations

import logging
import re

import httpx

from concierge.config import settings
from concierge.session import redact_pii

from .base import DeliveryResult, MessageDelivery

log = logging.getLogger("concierge.providers.whatsapp")


def to_chat_id(phone_number: str) -> str:
    """Green API addresses chats as ``<digits>@c.us``."""
    digits = re.sub(r"\D", "", phone_number)
    return f"{digits}@c.us"


class GreenApiDelivery(MessageDelivery):
    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = (api_url if api_url is not None else settings.green_api_url).rstrip("/")
        self._token = token if token is not None else settings.green_api_token
        self._client = client

    async def send_file(
        self, phone_number: str, file_url: str, caption: str = ""
    ) -> DeliveryResult:
        payload = {
            "chatId": to_chat_id(phone_number),
            "urlFile": file_url,
            "fileName": "presentation.pdf",
            "caption": caption,
        }
        log.info("Sending file to %s", redact_pii(phone_number))
        return await self._post("sendFileByUrl", payload, timeout=30)

    async def send_message(self, phone_number: str, message: str) -> DeliveryResult:
        payload = {"chatId": to_chat_id(phone_number), "message": message}
        log.info("Sending message to %s", redact_pii(phone_number))
        return await self._post("sendMessage", payload, timeout=10)

    async def _post(self, method: str, payload: dict, timeout: float) -> DeliveryResult:
        if not self._api_url:
            return DeliveryResult(success=False, error="Green API is not configured")

        url = f"{self._api_url}/{method}"
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload, headers=headers, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            log.error("Green API %s failed (status %d)", method, exc.response.status_code)
            return DeliveryResult(
                success=False, error=f"Green API error (status {exc.response.status_code})"
            )
        except (httpx.HTTPError, ValueError) as exc:
            log.error("Green API %s failed: %s", method, exc)
            return DeliveryResult(success=False, error=str(exc) or type(exc).__name__)

        message_id = data.get("idMessage") if isinstance(data, dict) else None
        if not message_id:
            log.error("Green API %s: unexpected response %s", method, data)
            return DeliveryResult(success=False, error="Unexpected response from Green API")

        log.info("Green API %s ok, message id %s", method, message_id)
        return DeliveryResult(success=True, message_id=message_id)
