"""
Delivery notifications: status vocabulary, message text, and the
persist-then-fan-out service the HTTP layer calls.
"""

from .messages import ADMIN_STATUSES, DeliveryStatus, compose_admin_message, compose_user_message
from .service import NotificationResult, NotificationService

__all__ = [
    "ADMIN_STATUSES",
    "DeliveryStatus",
    "compose_admin_message",
    "compose_user_message",
    "NotificationResult",
    "NotificationService",
]
