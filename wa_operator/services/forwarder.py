"""Forward processed conversations to an external webhook."""

from typing import Any

import httpx
from loguru import logger


class WebhookForwarder:
    """POSTs `{contact_id, text, reply, intent}` for every answered message."""

    def __init__(self, url: str, timeout_s: float = 10.0):
        self.url = url
        self.timeout_s = timeout_s

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def forward(self, payload: dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        body = {
            "contact_id": payload.get("contact_id"),
            "text": payload.get("text"),
            "reply": payload.get("reply"),
            "intent": payload.get("intent"),
        }
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.url, json=body, timeout=self.timeout_s)
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Webhook forward to {self.url} failed: {e}")
            return False
