"""
Notification Service
────────────────────
Persists the customer (and, for admin statuses, the admin) notification
record, then hands the update to the broadcaster. Records are written first so
a live client never hears about an update that was not stored.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

from realtime import Broadcaster

from .messages import ADMIN_STATUSES, DeliveryStatus, compose_admin_message, compose_user_message

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass
class NotificationResult:
    user_notification_id: str
    admin_notification_id: Optional[str]
    delivered_to: int = 0


class NotificationService:
    def __init__(
        self,
        db,
        broadcaster: Broadcaster,
        admin_statuses: FrozenSet[str] = ADMIN_STATUSES,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.admin_statuses = admin_statuses

    async def notify_delivery(
        self,
        user_id: str,
        status: str,
        delivery_data: Optional[Dict[str, Any]] = None,
        feedback: Optional[str] = None,
    ) -> NotificationResult:
        delivery_data = delivery_data or {}
        raw_delivery_id = delivery_data.get("id")
        delivery_id = raw_delivery_id or UNKNOWN
        delivery_type = delivery_data.get("deliveryType") or UNKNOWN
        now = datetime.now(timezone.utc).isoformat()

        logger.info(f"[Notify] Processing notification for user {user_id}, status {status}")

        title, body = compose_user_message(status, feedback)
        user_doc = {
            "id": str(uuid.uuid4()),
            "userId": user_id,
            "title": title,
            "body": body,
            "type": "delivery_update",
            "data": {
                "deliveryId": delivery_id,
                "status": status,
                "deliveryType": delivery_type,
            },
            "read": False,
            "createdAt": now,
        }
        await self.db.user_notifications.insert_one(user_doc)
        logger.info(f"[Notify] User notification created: {user_doc['id']}")

        admin_doc = None
        if status in self.admin_statuses:
            admin_title, admin_body = compose_admin_message(status, raw_delivery_id)
            admin_doc = {
                "id": str(uuid.uuid4()),
                "type": "delivery_created" if status == DeliveryStatus.CREATED.value else "delivery_completed",
                "title": admin_title,
                "body": admin_body,
                "data": {
                    "deliveryId": delivery_id,
                    "userId": user_id,
                    "status": status,
                    "deliveryType": delivery_type,
                },
                "read": False,
                "createdAt": now,
            }
            await self.db.admin_notifications.insert_one(admin_doc)
            logger.info(f"[Notify] Admin notification created: {admin_doc['id']}")
        else:
            logger.debug(f"[Notify] Skipping admin notification for status: {status}")

        delivered_to = 0
        if raw_delivery_id:
            delivered_to = await self.broadcaster.publish(raw_delivery_id, {
                "status": status,
                "title": title,
                "body": body,
                "userId": user_id,
                "deliveryType": delivery_type,
                "notificationId": user_doc["id"],
            })

        if admin_doc is not None:
            await self.broadcaster.publish_broadcast({
                "event": admin_doc["type"],
                "title": admin_doc["title"],
                "body": admin_doc["body"],
                "notificationId": admin_doc["id"],
                **admin_doc["data"],
            })

        return NotificationResult(
            user_notification_id=user_doc["id"],
            admin_notification_id=admin_doc["id"] if admin_doc else None,
            delivered_to=delivered_to,
        )
