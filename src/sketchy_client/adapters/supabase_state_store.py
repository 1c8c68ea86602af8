"""Supabase-backed key-value store for workflow snapshots."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from sketchy_client.services.persistence import KeyValueStore


@dataclass
class SupabaseStateStore(KeyValueStore):
    """Supabase implementation storing one row per key."""

    client: Client
    table: str = "workflow_snapshots"

    def read(self, key: str) -> str | None:
        """Return the stored value, if present."""
        response = (
            self.client.table(self.table)
            .select("value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0].get("value")

    def write(self, key: str, value: str) -> None:
        """Insert or overwrite the row for a key."""
        self.client.table(self.table).upsert(
            {
                "key": key,
                "value": value,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="key",
        ).execute()
