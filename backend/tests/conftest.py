import asyncio
from collections import defaultdict

import pytest

from realtime import DeliveryError


class RecordingTransport:
    """deliver_to stand-in that records payloads per handle."""

    def __init__(self, failing=()):
        self.received = defaultdict(list)
        self.failing = set(failing)

    async def deliver_to(self, handle, payload):
        if handle in self.failing:
            raise DeliveryError(handle, "simulated send failure")
        self.received[handle].append(payload)


class FakeWebSocket:
    def __init__(self, fail_sends=False):
        self.sent = []
        self.fail_sends = fail_sends

    async def send_json(self, payload):
        if self.fail_sends:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


class RecordingCollection:
    """Collection stand-in that keeps inserted rows in order."""

    def __init__(self):
        self.rows = []

    async def insert_one(self, doc):
        self.rows.append(dict(doc))
        return doc

    async def delete_one(self, filters):
        for i, row in enumerate(self.rows):
            if all(row.get(k) == v for k, v in filters.items()):
                self.rows.pop(i)
                return True
        return False


class RecordingDB:
    backend = "memory"

    def __init__(self):
        self.user_notifications = RecordingCollection()
        self.admin_notifications = RecordingCollection()


async def wait_for(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def recorder():
    return RecordingTransport()
