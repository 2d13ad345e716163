"""WhatsApp transport over the Baileys bridge WebSocket."""

import asyncio
import base64
import json
import time

from loguru import logger

from wa_operator.bus.events import TRANSPORT_DISCONNECTED, TRANSPORT_READY, InboundEvent
from wa_operator.bus.queue import EventBus
from wa_operator.channels.base import BaseChannel
from wa_operator.config.schema import WhatsAppConfig


class WhatsAppChannel(BaseChannel):
    """
    Transport backed by the Node.js WhatsApp bridge.

    The bridge speaks WhatsApp Web; this side exchanges JSON frames with it,
    reconnecting after a fixed delay whenever the socket drops.
    """

    name = "whatsapp"

    def __init__(self, config: WhatsAppConfig, bus: EventBus, reconnect_delay_s: float = 5.0):
        super().__init__(config, bus)
        self.config: WhatsAppConfig = config
        self.reconnect_delay_s = reconnect_delay_s
        self._ws = None
        self._connected = False

    async def start(self) -> None:
        """Connect to the bridge and pump frames until stopped."""
        import websockets

        bridge_url = self.config.bridge_url

        logger.info(f"WhatsApp bridge: {bridge_url}")

        self._running = True

        while self._running:
            try:
                async with websockets.connect(bridge_url) as ws:
                    self._ws = ws
                    logger.info("WhatsApp bridge socket open")

                    if self.config.bridge_token:
                        await ws.send(json.dumps({"type": "auth", "token": self.config.bridge_token}))
                        logger.debug("Bridge token sent")

                    async for message in ws:
                        try:
                            await self._handle_bridge_message(message)
                        except Exception as e:
                            logger.error(f"Bridge frame failed: {e}")

                logger.warning("WhatsApp bridge closed the connection")

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"WhatsApp bridge unreachable: {e}")

            self._set_connected(False)
            self._ws = None
            if self._running:
                logger.info(f"Reconnecting in {self.reconnect_delay_s:g} seconds...")
                await asyncio.sleep(self.reconnect_delay_s)

    async def stop(self) -> None:
        """Stop reconnecting and close the socket."""
        self._running = False
        self._set_connected(False)

        if self._ws:
            await self._ws.close()
            self._ws = None

    def is_ready(self) -> bool:
        return self._ws is not None and self._connected

    async def _send(self, payload: dict) -> None:
        if not self.is_ready():
            raise RuntimeError("WhatsApp bridge not connected")
        await self._ws.send(json.dumps(payload))

    async def send_message(self, contact_id: str, text: str) -> None:
        await self._send({"type": "send", "to": contact_id, "text": text})

    async def send_media(
        self,
        contact_id: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        as_voice: bool = False,
    ) -> None:
        await self._send(
            {
                "type": "send_media",
                "to": contact_id,
                "data": base64.b64encode(data).decode("ascii"),
                "mimeType": mime_type,
                "asVoice": bool(as_voice),
            }
        )

    async def simulate_typing(self, contact_id: str, duration_ms: int) -> None:
        """Show "typing..." for `duration_ms`. Best effort: failures only log."""
        try:
            await self._send({"type": "presence", "to": contact_id, "state": "composing"})
            await asyncio.sleep(max(0, duration_ms) / 1000)
            await self._send({"type": "presence", "to": contact_id, "state": "paused"})
        except Exception as e:
            logger.debug(f"Typing indicator failed for {contact_id}: {e}")

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        self.bus.emit(TRANSPORT_READY if connected else TRANSPORT_DISCONNECTED, self.name)

    async def _handle_bridge_message(self, raw: str) -> None:
        """Dispatch one bridge frame by its `type`."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Dropping non-JSON bridge frame: {raw[:100]}")
            return

        msg_type = data.get("type")

        if msg_type == "message":
            self._publish_message(self._to_event(data))

        elif msg_type == "presence":
            # Owner composing in a chat from another device
            if data.get("fromMe") and data.get("state") == "composing":
                self._publish_typing(str(data.get("chatId", "")))

        elif msg_type == "status":
            status = data.get("status")
            logger.info(f"WhatsApp session {status}")

            if status == "connected":
                self._set_connected(True)
            elif status == "disconnected":
                self._set_connected(False)

        elif msg_type == "qr":
            logger.info("WhatsApp login pending: scan the QR code shown by the bridge")

        elif msg_type == "error":
            logger.error(f"Bridge reported: {data.get('error')}")

    def _to_event(self, data: dict) -> InboundEvent:
        chat_jid = str(data.get("chatId", "") or data.get("sender", ""))
        media_type = str(data.get("mediaType", "") or "").strip().lower()
        try:
            timestamp = float(data.get("timestamp"))
        except (TypeError, ValueError):
            timestamp = time.time()

        return InboundEvent(
            contact_id=chat_jid,
            text=str(data.get("content", "") or ""),
            content_type=media_type or "text",
            is_from_me=bool(data.get("fromMe", False)),
            is_group=bool(data.get("isGroup", False)) or chat_jid.endswith("@g.us"),
            display_name=data.get("pushName") or None,
            timestamp=timestamp,
            has_media=bool(media_type),
            metadata={
                "message_id": data.get("id"),
                "sender_jid": data.get("sender"),
                "mime_type": data.get("mimeType"),
            },
        )
