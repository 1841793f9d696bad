"""
Relay Configuration
───────────────────
Centralizes the tunable parameters of the notification relay. Values come
from the environment (backend/.env is loaded by the server before this runs).
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, List

from notifications import ADMIN_STATUSES


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class RelayConfig:
    supabase_url: str = ""
    supabase_key: str = ""
    port: int = 3000
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    admin_statuses: FrozenSet[str] = ADMIN_STATUSES
    outbound_queue_size: int = 256  # per connection; deliveries beyond this fail for that client only

    @classmethod
    def from_env(cls) -> "RelayConfig":
        admin_override = _csv(os.environ.get("NOTIFY_ADMIN_STATUSES", ""))
        return cls(
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_SERVICE_KEY", ""),
            port=int(os.environ.get("PORT", "3000")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            cors_origins=_csv(os.environ.get("CORS_ORIGINS", "*")) or ["*"],
            admin_statuses=frozenset(admin_override) if admin_override else ADMIN_STATUSES,
            outbound_queue_size=int(os.environ.get("OUTBOUND_QUEUE_SIZE", "256")),
        )
