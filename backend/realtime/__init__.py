"""
Real-time delivery layer.
- SubscriptionRegistry: order ID <-> connection handle index.
- Broadcaster: fans order updates and announcements out to handles.
- ConnectionTransport: WebSocket outbound queues implementing deliver_to.
"""

from .registry import SubscriptionRegistry
from .broadcaster import Broadcaster, DeliveryEnvelope, EnvelopeType
from .transport import ConnectionTransport, DeliveryError

__all__ = [
    "SubscriptionRegistry",
    "Broadcaster",
    "DeliveryEnvelope",
    "EnvelopeType",
    "ConnectionTransport",
    "DeliveryError",
]
