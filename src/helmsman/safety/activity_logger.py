"""Activity Logger - Append-only audit trail of agent activity."""

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

import structlog

from helmsman.core.types import ActivityRecord, ActivityStatus


logger = structlog.get_logger("helmsman.activity")


class StructlogActivityLogger:
    """Audit logger that emits every record through structlog.

    A bounded window of recent records is kept in memory for display; the
    agent itself never reads it back.
    """

    def __init__(self, max_records: int = 1000) -> None:
        """Initialize the logger.

        Args:
            max_records: How many recent records to keep in memory
        """
        self._records: deque[ActivityRecord] = deque(maxlen=max_records)

    async def log(
        self,
        action: str,
        details: str,
        status: ActivityStatus,
        screenshot: Any = None,
    ) -> str:
        """Record an activity.

        Args:
            action: Short action name (e.g. "click", "task_failed")
            details: Human readable details
            status: Outcome of the activity
            screenshot: Optional screenshot reference

        Returns:
            ID of the new record
        """
        record = ActivityRecord(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            details=details,
            status=ActivityStatus(status),
            screenshot=screenshot,
        )
        self._records.append(record)

        logger.info(
            "activity",
            record_id=record.id,
            action=action,
            details=details,
            status=record.status.value,
            has_screenshot=screenshot is not None,
        )
        return record.id

    def recent(
        self, limit: int = 100, status: ActivityStatus | None = None
    ) -> list[ActivityRecord]:
        """Most recent records, newest last, optionally filtered by status."""
        records = [r for r in self._records if status is None or r.status == status]
        return records[-limit:] if limit > 0 else []
