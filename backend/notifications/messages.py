"""
Delivery status vocabulary and the customer/admin message text for each status.
"""

from enum import Enum
from typing import Optional, Tuple


class DeliveryStatus(str, Enum):
    CREATED = "created"
    CONFIRMED = "confirmed"
    VIEWED = "viewed"
    IN_PROGRESS = "in-progress"
    DELIVERED = "delivered"
    FAILED = "failed"
    FEEDBACK = "feedback"


# Statuses that also write an admin record and announce on the dashboard channel
ADMIN_STATUSES = frozenset({
    DeliveryStatus.CREATED.value,
    DeliveryStatus.DELIVERED.value,
    DeliveryStatus.FAILED.value,
})

DEFAULT_FEEDBACK_BODY = "You have received feedback from our admin team."

USER_MESSAGES = {
    DeliveryStatus.CREATED.value: (
        "Delivery Created",
        "Your delivery request has been received.",
    ),
    DeliveryStatus.CONFIRMED.value: (
        "Delivery Confirmed",
        "Your delivery request has been confirmed.",
    ),
    DeliveryStatus.VIEWED.value: (
        "Delivery Viewed",
        "Your delivery request has been reviewed by our team.",
    ),
    DeliveryStatus.IN_PROGRESS.value: (
        "Delivery In Progress",
        "Great news! Your delivery is now in progress and on its way.",
    ),
    DeliveryStatus.DELIVERED.value: (
        "Delivery Completed",
        "Your delivery has been successfully completed. Thank you for using our service!",
    ),
    DeliveryStatus.FAILED.value: (
        "Delivery Failed",
        "Unfortunately, your delivery could not be completed. Please contact support.",
    ),
}


def compose_user_message(status: str, feedback: Optional[str] = None) -> Tuple[str, str]:
    if status == DeliveryStatus.FEEDBACK.value:
        return "Admin Feedback", feedback or DEFAULT_FEEDBACK_BODY

    title, body = USER_MESSAGES.get(
        status,
        ("Delivery Update", f"Your delivery status has been updated to: {status}"),
    )
    if feedback:
        body += f"\n\nAdmin Note: {feedback}"
    return title, body


def compose_admin_message(status: str, delivery_id: Optional[str]) -> Tuple[str, str]:
    short_id = delivery_id[:8] if delivery_id else "unknown"
    title = f"Delivery {status[:1].upper()}{status[1:]}"
    body = f"Delivery {short_id} has been marked as {status}"
    return title, body
