"""
Supabase Record Store with In-Memory Fallback
─────────────────────────────────────────────
Collection-style access to the notification tables (user_notifications,
admin_notifications, health_checks) on Supabase PostgreSQL. Falls back to an
in-memory store when credentials are missing or Supabase is unreachable, so
the relay still runs locally and in tests.
"""

import json
import logging
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

JSON_COLUMNS = ("data",)


def _matches(doc: Dict, filters: Dict[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in filters.items())


# ─── In-Memory Fallback ─────────────────────────────────────────────────────

class InMemoryCollection:
    def __init__(self, name: str):
        self._name = name
        self._store: List[Dict] = []

    async def insert_one(self, doc: Dict[str, Any]) -> Dict:
        self._store.append(deepcopy(doc))
        return doc

    async def delete_one(self, filters: Dict[str, Any]) -> bool:
        for i, doc in enumerate(self._store):
            if _matches(doc, filters):
                self._store.pop(i)
                return True
        return False


# ─── Supabase Collection ────────────────────────────────────────────────────

class SupabaseCollection:
    def __init__(self, client, table_name: str):
        self._client = client
        self._table = table_name

    async def insert_one(self, doc: Dict[str, Any]) -> Dict:
        result = self._client.table(self._table).insert(doc).execute()
        if result.data:
            return self._normalize(result.data[0])
        return doc

    async def delete_one(self, filters: Dict[str, Any]) -> bool:
        query = self._client.table(self._table).delete()
        for key, value in filters.items():
            query = query.eq(key, value)
        result = query.execute()
        return bool(result.data)

    def _normalize(self, row: Dict) -> Dict:
        for key in JSON_COLUMNS:
            if key in row and isinstance(row[key], str):
                try:
                    row[key] = json.loads(row[key])
                except (ValueError, TypeError):
                    pass
        return row


# ─── Top-Level DB Object ────────────────────────────────────────────────────

class SupabaseDB:
    """
    Attribute access to collections: db.user_notifications, db.admin_notifications.
    Falls back to in-memory storage if the Supabase connection fails.
    """

    def __init__(self, url: str, key: str):
        self._client = None
        self._use_memory = False
        self._collections: Dict[str, Any] = {}

        if not url or not key:
            logger.warning("[DB] No Supabase credentials — using in-memory storage")
            self._use_memory = True
            return

        try:
            from supabase import create_client
            self._client = create_client(url, key)
            self._client.table("user_notifications").select("id").limit(1).execute()
            logger.info(f"[DB] Connected to Supabase: {url[:40]}...")
        except Exception as e:
            logger.warning(f"[DB] Supabase unavailable ({e}) — using in-memory storage")
            self._use_memory = True
            self._client = None

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            if self._use_memory:
                self._collections[name] = InMemoryCollection(name)
            else:
                self._collections[name] = SupabaseCollection(self._client, name)
        return self._collections[name]

    @property
    def backend(self) -> str:
        return "memory" if self._use_memory else "supabase"

    async def ping(self):
        """Write then delete a probe row. Raises if the store is not usable."""
        probe_id = f"probe-{uuid.uuid4().hex}"
        try:
            await self.health_checks.insert_one({"id": probe_id, "checked_at": datetime.now(timezone.utc).isoformat()})
        finally:
            await self.health_checks.delete_one({"id": probe_id})
