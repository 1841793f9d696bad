"""
Broadcaster: fans order updates out to subscribed connections.

publish() routes through the SubscriptionRegistry (one order, its watchers);
publish_broadcast() goes to every open connection (ops dashboard
announcements). Delivery is fire-and-forget per handle: a failing handle is
logged and skipped, never raised to whoever triggered the update.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class EnvelopeType(str, Enum):
    ORDER_UPDATE = "order_update"
    ANNOUNCEMENT = "announcement"


@dataclass
class DeliveryEnvelope:
    envelope_type: EnvelopeType
    data: Dict[str, Any]
    order_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "type": self.envelope_type.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }
        if self.order_id is not None:
            out["order_id"] = self.order_id
        return out


DeliverFn = Callable[[str, Dict[str, Any]], Awaitable[None]]


class Broadcaster:
    """
    Publishes envelopes to handles via the transport's deliver_to.

    The timestamp is fixed once per publish so every recipient sees the same
    instant. deliver_to must enqueue in call order; nothing here yields
    between taking the recipient snapshot and handing the envelope over.
    """

    def __init__(self, registry: SubscriptionRegistry, deliver_to: DeliverFn):
        self.registry = registry
        self._deliver_to = deliver_to
        self._connections: Set[str] = set()

    def connection_opened(self, handle: str):
        self._connections.add(handle)

    async def connection_closed(self, handle: str):
        self._connections.discard(handle)
        await self.registry.disconnect(handle)

    def connected_count(self) -> int:
        return len(self._connections)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        handles = await self.registry.subscribers(topic)
        envelope = DeliveryEnvelope(EnvelopeType.ORDER_UPDATE, payload, order_id=topic)
        sent = await self._fan_out(handles, envelope.to_dict())
        logger.info(f"[Broadcast] {topic} update delivered to {sent}/{len(handles)} subscriber(s)")
        return sent

    async def publish_broadcast(self, payload: Dict[str, Any]) -> int:
        handles = frozenset(self._connections)
        envelope = DeliveryEnvelope(EnvelopeType.ANNOUNCEMENT, payload)
        sent = await self._fan_out(handles, envelope.to_dict())
        logger.info(f"[Broadcast] Announcement delivered to {sent}/{len(handles)} connection(s)")
        return sent

    async def _fan_out(self, handles: Iterable[str], message: Dict[str, Any]) -> int:
        sent = 0
        for handle in handles:
            try:
                await self._deliver_to(handle, message)
                sent += 1
            except Exception as e:
                logger.warning(f"[Broadcast] Delivery to {handle} failed: {e}")
        return sent
