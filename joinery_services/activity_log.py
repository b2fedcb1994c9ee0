"""
joinery_services.activity_log -- Best-effort activity log adapter.

Builds the audit entry for an accepted transition and appends it to the
log store.  The append is a separate step issued after the job write; a
failure there is logged and discarded so it can never fail or roll back
the transition that produced it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from joinery_kernel.domain.dtos import ActivityEntry
from joinery_kernel.logging_config import get_logger
from joinery_services.stores import LogStore

logger = get_logger("services.activity_log")


def build_entry(
    job_id: str,
    action: str,
    detail: str,
    created_at: datetime,
    meta: dict[str, Any] | None = None,
) -> ActivityEntry:
    return ActivityEntry(
        job_id=job_id,
        action=action,
        detail=detail,
        created_at=created_at,
        meta=dict(meta or {}),
    )


class ActivityLogger:
    """Appends audit entries; never raises."""

    def __init__(self, store: LogStore | None):
        self._store = store

    def record(self, entry: ActivityEntry) -> bool:
        """Append ``entry``.  Returns False if the append failed or no store is wired."""
        if self._store is None:
            return False
        try:
            self._store.add_job_log(entry)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "activity_log_append_failed",
                extra={
                    "job_id": entry.job_id,
                    "action": entry.action,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False
        return True

    def history(self, job_id: str) -> list[ActivityEntry]:
        if self._store is None:
            return []
        return list(self._store.get_job_logs(job_id))
