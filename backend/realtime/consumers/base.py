"""Owner-scoped WebSocket consumer base: auth gate, personal group, message dispatch."""

import logging
from typing import Any, Dict

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)

CLOSE_UNAUTHENTICATED = 4401
CLOSE_NOT_AN_OWNER = 4403


def owner_group(owner_id) -> str:
    return f"user_{owner_id}"


class OwnerConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer for a single fleet owner's socket.

    The connection joins exactly one group, ``user_<owner_id>``, which is
    where the notification port sends lease events. Incoming messages are
    routed through ``handlers``, a mapping of message type to method name,
    so subclasses only declare what they answer.
    """

    handlers: Dict[str, str] = {}
    allowed_roles = ("owner_operator",)

    async def connect(self):
        user = self.scope.get("user")
        if user is None or user.is_anonymous:
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return
        if not (user.is_staff or getattr(user, "role", None) in self.allowed_roles):
            await self.close(code=CLOSE_NOT_AN_OWNER)
            return

        self.owner = user
        self.owner_id = user.id
        self.group_name = owner_group(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        await self.reply("connection_established", owner_id=self.owner_id)

    async def disconnect(self, close_code):
        group = getattr(self, "group_name", None)
        if group:
            await self.channel_layer.group_discard(group, self.channel_name)
        logger.debug("Owner socket closed (owner=%s, code=%s)", getattr(self, "owner_id", None), close_code)

    async def receive_json(self, content: Dict[str, Any], **kwargs):
        msg_type = content.get("type") if isinstance(content, dict) else None
        handler_name = self.handlers.get(msg_type) if msg_type else None
        if handler_name is None:
            await self.reply_error("unknown_message", f"Unsupported message type: {msg_type!r}")
            return

        try:
            await getattr(self, handler_name)(content)
        except Exception:
            logger.exception("Owner %s: handler for %s failed", self.owner_id, msg_type)
            await self.reply_error("handler_failed", f"Could not process {msg_type}")

    async def reply(self, msg_type: str, **fields):
        await self.send_json({"type": msg_type, **fields})

    async def reply_error(self, code: str, message: str):
        await self.send_json({"type": "error", "code": code, "message": message})

    # group_send handlers

    async def lease_event(self, event):
        """Forward a match/agreement/trip transition to the browser."""
        payload = event.get("payload") or {}
        await self.send_json({
            "type": "lease_event",
            "kind": event.get("kind"),
            "matchId": payload.get("matchId"),
            "tlaId": payload.get("tlaId"),
            "payload": payload,
        })
