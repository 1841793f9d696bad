"""
Subscription Registry
─────────────────────
Bidirectional index between order IDs (topics) and live connection handles.

The forward index answers "who is watching ORD-1?" for a publish; the reverse
index answers "what was conn-abc watching?" so a disconnect only touches the
topics that handle actually joined. Both maps live behind one asyncio.Lock and
are never exposed directly.
"""

import asyncio
import logging
from typing import Dict, FrozenSet, Set

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Topic <-> handle mapping shared by every connection task and every
    publisher. Construct one per app and pass it around.

    Invariant (held whenever the lock is free):
        handle in forward[topic]  <=>  topic in reverse[handle]
    and neither index keeps an empty set.
    """

    def __init__(self):
        self._forward: Dict[str, Set[str]] = {}
        self._reverse: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str, handle: str):
        async with self._lock:
            self._forward.setdefault(topic, set()).add(handle)
            self._reverse.setdefault(handle, set()).add(topic)
        logger.debug(f"[Registry] {handle} subscribed to {topic}")

    async def unsubscribe(self, topic: str, handle: str):
        async with self._lock:
            self._discard(topic, handle)
            topics = self._reverse.get(handle)
            if topics is not None:
                topics.discard(topic)
                if not topics:
                    del self._reverse[handle]
        logger.debug(f"[Registry] {handle} unsubscribed from {topic}")

    async def disconnect(self, handle: str) -> FrozenSet[str]:
        """
        Drop a handle from every topic it joined.

        Safe for handles that never subscribed. Returns the topics the handle
        was removed from.
        """
        async with self._lock:
            topics = self._reverse.pop(handle, set())
            for topic in topics:
                self._discard(topic, handle)
        if topics:
            logger.info(f"[Registry] {handle} disconnected, left {len(topics)} topic(s)")
        return frozenset(topics)

    async def subscriber_count(self, topic: str) -> int:
        async with self._lock:
            return len(self._forward.get(topic, ()))

    async def subscribers(self, topic: str) -> FrozenSet[str]:
        async with self._lock:
            return frozenset(self._forward.get(topic, ()))

    async def topics_for(self, handle: str) -> FrozenSet[str]:
        async with self._lock:
            return frozenset(self._reverse.get(handle, ()))

    async def stats(self) -> Dict[str, int]:
        async with self._lock:
            return {
                "topics": len(self._forward),
                "handles": len(self._reverse),
                "subscriptions": sum(len(h) for h in self._forward.values()),
            }

    async def is_consistent(self) -> bool:
        async with self._lock:
            forward_pairs = {(t, h) for t, handles in self._forward.items() for h in handles}
            reverse_pairs = {(t, h) for h, topics in self._reverse.items() for t in topics}
            no_empty = all(self._forward.values()) and all(self._reverse.values())
            return forward_pairs == reverse_pairs and no_empty

    def _discard(self, topic: str, handle: str):
        # caller holds the lock
        handles = self._forward.get(topic)
        if handles is None:
            return
        handles.discard(handle)
        if not handles:
            del self._forward[topic]
