from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from marketsync.models import SyncStatus
from marketsync.storage import (
    complete_sync_log,
    count_sync_logs,
    insert_sync_log,
    latest_sync_log,
    list_sync_logs,
)

logger = logging.getLogger(__name__)

ERROR_SAMPLE_SIZE = 10


class SyncLedger:
    """Append-only record of sync attempts, one entry per venue job."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def open(self, venue: str, kind: str) -> int:
        entry_id = insert_sync_log(self.db_path, venue, kind, SyncStatus.IN_PROGRESS)
        logger.debug("Opened %s sync log %d for %s", kind, entry_id, venue)
        return entry_id

    def close(
        self,
        entry_id: int,
        errors: list[str],
        duration_ms: int,
        markets_updated: int = 0,
        prices_updated: int = 0,
    ) -> str:
        status = SyncStatus.SUCCESS if not errors else SyncStatus.FAILED
        complete_sync_log(
            self.db_path,
            entry_id,
            status=status,
            duration_ms=duration_ms,
            markets_updated=markets_updated,
            prices_updated=prices_updated,
            error_count=len(errors),
            error_details=errors[:ERROR_SAMPLE_SIZE] or None,
        )
        return status

    def last_success(self, venue: str) -> Optional[datetime]:
        row = latest_sync_log(self.db_path, venue, status=SyncStatus.SUCCESS)
        if not row or not row.get("completed_at"):
            return None
        return datetime.fromisoformat(row["completed_at"])

    def failures_since(self, venue: str, since: datetime) -> int:
        return count_sync_logs(self.db_path, venue, SyncStatus.FAILED, since.isoformat())

    def recent_failures(self, venue: str, hours: int = 24) -> int:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        return self.failures_since(venue, since)

    def recent(self, venue: Optional[str] = None, limit: int = 20) -> list[dict]:
        return list_sync_logs(self.db_path, venue=venue, limit=limit)
