"""Fleet owner WebSocket consumer for lease engine updates."""

from typing import Dict, Any

from channels.db import database_sync_to_async
from django.db.models import Q

from agreements.models import AWAITING_SIGNATURE_STATUSES, TripLeaseAgreement
from matches.models import Match, NEGOTIABLE_STATUSES
from .base import OwnerConsumer


class FleetConsumer(OwnerConsumer):
    """
    Streams lease_event messages (match requests, counters, agreement
    signatures, trip start/end) to the owner and answers:
        - ping
        - pending_actions: matches waiting on me, agreements waiting on my signature
    """

    handlers = {
        "ping": "handle_ping",
        "pending_actions": "handle_pending_actions",
    }

    async def on_connect(self):
        counts = await self._pending_actions()
        await self.reply("connection_established", owner_id=self.owner_id, pending=counts)

    async def handle_ping(self, content: Dict[str, Any]):
        await self.reply("pong")

    async def handle_pending_actions(self, content: Dict[str, Any]):
        counts = await self._pending_actions()
        await self.reply("pending_actions", **counts)

    @database_sync_to_async
    def _pending_actions(self) -> Dict[str, int]:
        matches = Match.objects.filter(
            recipient_owner_id=self.owner_id,
            status__in=NEGOTIABLE_STATUSES,
        ).count()

        unsigned = TripLeaseAgreement.objects.filter(
            Q(lessor_owner_id=self.owner_id, lessor_signature__isnull=True)
            | Q(lessee_owner_id=self.owner_id, lessee_signature__isnull=True),
            status__in=AWAITING_SIGNATURE_STATUSES,
        ).count()

        return {"matches_awaiting_response": matches, "agreements_awaiting_signature": unsigned}
