import asyncio

import pytest

from notifications import (
    ADMIN_STATUSES,
    DeliveryStatus,
    NotificationService,
    compose_admin_message,
    compose_user_message,
)
from conftest import RecordingDB
from realtime import Broadcaster, SubscriptionRegistry


class TestMessages:
    """Status -> title/body text"""

    def test_known_statuses(self):
        assert compose_user_message("in-progress")[0] == "Delivery In Progress"
        assert compose_user_message("delivered")[0] == "Delivery Completed"
        assert compose_user_message("failed")[1].startswith("Unfortunately")

    def test_unknown_status_falls_back(self):
        title, body = compose_user_message("lost-at-sea")
        assert title == "Delivery Update"
        assert body == "Your delivery status has been updated to: lost-at-sea"

    def test_feedback_status_uses_feedback_text(self):
        assert compose_user_message("feedback", "Ring the bell") == ("Admin Feedback", "Ring the bell")
        assert compose_user_message("feedback")[1] == "You have received feedback from our admin team."

    def test_feedback_is_appended_as_admin_note(self):
        _, body = compose_user_message("viewed", "Driver assigned")
        assert body.endswith("\n\nAdmin Note: Driver assigned")

    def test_admin_message(self):
        assert compose_admin_message("delivered", "abcdef1234567") == (
            "Delivery Delivered",
            "Delivery abcdef12 has been marked as delivered",
        )
        assert compose_admin_message("failed", None)[1] == "Delivery unknown has been marked as failed"

    def test_admin_statuses(self):
        assert DeliveryStatus.DELIVERED.value in ADMIN_STATUSES
        assert DeliveryStatus.IN_PROGRESS.value not in ADMIN_STATUSES


class _BrokenCollection:
    async def insert_one(self, doc):
        raise RuntimeError("table unavailable")


class _BrokenDB:
    user_notifications = _BrokenCollection()
    admin_notifications = _BrokenCollection()


def _service(recorder, db=None):
    broadcaster = Broadcaster(SubscriptionRegistry(), recorder.deliver_to)
    return NotificationService(db or RecordingDB(), broadcaster)


class TestNotificationService:
    """Persist, then fan out"""

    def test_user_record_only_for_non_admin_status(self, recorder):
        service = _service(recorder)

        result = asyncio.run(service.notify_delivery("user-1", "in-progress", {"id": "ORD-1", "deliveryType": "parcel"}))
        users = service.db.user_notifications.rows
        assert result.admin_notification_id is None
        assert service.db.admin_notifications.rows == []
        assert len(users) == 1
        record = users[0]
        assert record["id"] == result.user_notification_id
        assert record["type"] == "delivery_update"
        assert record["read"] is False
        assert record["data"] == {"deliveryId": "ORD-1", "status": "in-progress", "deliveryType": "parcel"}

    def test_admin_record_for_terminal_status(self, recorder):
        service = _service(recorder)

        result = asyncio.run(service.notify_delivery("user-2", "failed", {"id": "ORD-22"}))
        [admin] = service.db.admin_notifications.rows
        assert admin["id"] == result.admin_notification_id
        assert admin["type"] == "delivery_completed"
        assert admin["title"] == "Delivery Failed"
        assert admin["data"]["userId"] == "user-2"
        assert admin["data"]["deliveryType"] == "unknown"

    def test_created_status_writes_created_admin_record(self, recorder):
        service = _service(recorder)

        asyncio.run(service.notify_delivery("user-3", "created", {"id": "ORD-3"}))
        assert service.db.admin_notifications.rows[0]["type"] == "delivery_created"

    def test_subscribers_receive_update(self, recorder):
        service = _service(recorder)

        async def run():
            await service.broadcaster.registry.subscribe("ORD-1", "H1")
            return await service.notify_delivery("user-1", "delivered", {"id": "ORD-1"})

        result = asyncio.run(run())
        assert result.delivered_to == 1
        update = recorder.received["H1"][0]
        assert update["type"] == "order_update"
        assert update["data"]["status"] == "delivered"
        assert update["data"]["notificationId"] == result.user_notification_id

    def test_admin_status_announces_to_all_connections(self, recorder):
        service = _service(recorder)

        async def run():
            service.broadcaster.connection_opened("dashboard")
            return await service.notify_delivery("user-1", "delivered", {"id": "ORD-1"})

        result = asyncio.run(run())
        announcement = recorder.received["dashboard"][0]
        assert announcement["type"] == "announcement"
        assert announcement["data"]["notificationId"] == result.admin_notification_id
        assert announcement["data"]["deliveryId"] == "ORD-1"

    def test_missing_delivery_id_is_not_published(self, recorder):
        service = _service(recorder)

        async def run():
            await service.broadcaster.registry.subscribe("unknown", "H1")
            return await service.notify_delivery("user-1", "viewed")

        result = asyncio.run(run())
        assert result.delivered_to == 0
        assert recorder.received["H1"] == []

    def test_storage_failure_propagates_without_publishing(self, recorder):
        service = _service(recorder, db=_BrokenDB())

        async def run():
            service.broadcaster.connection_opened("dashboard")
            await service.broadcaster.registry.subscribe("ORD-1", "H1")
            await service.notify_delivery("user-1", "delivered", {"id": "ORD-1"})

        with pytest.raises(RuntimeError):
            asyncio.run(run())
        assert recorder.received["H1"] == []
        assert recorder.received["dashboard"] == []
