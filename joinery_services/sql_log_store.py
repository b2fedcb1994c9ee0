"""
SqlLogStore -- SQLAlchemy-backed activity log collaborator.

Append-only: entries are inserted and read back in creation order, never
updated or deleted.  Database failures are re-raised as ``LoggingError``
so the activity logger can discard them.  Flush-only; the caller owns the
transaction.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from joinery_kernel.domain.dtos import ActivityEntry
from joinery_kernel.exceptions import LoggingError
from joinery_kernel.logging_config import get_logger
from joinery_kernel.models.activity_log import ActivityLogModel

logger = get_logger("services.sql_log_store")


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def to_json_meta(meta: dict[str, Any]) -> dict[str, Any]:
    """Decimals, dates and enums become strings so the JSON column accepts them."""
    return json.loads(json.dumps(meta, default=_json_default))


class SqlLogStore:
    def __init__(self, session: Session):
        self._session = session

    def add_job_log(self, entry: ActivityEntry) -> None:
        try:
            self._session.add(ActivityLogModel(
                job_id=entry.job_id,
                action=entry.action,
                detail=entry.detail,
                meta=to_json_meta(entry.meta),
                created_at=entry.created_at,
            ))
            self._session.flush()
        except SQLAlchemyError as exc:
            raise LoggingError(entry.job_id, str(exc)) from exc

    def get_job_logs(self, job_id: str) -> list[ActivityEntry]:
        rows = self._session.execute(
            select(ActivityLogModel)
            .where(ActivityLogModel.job_id == job_id)
            .order_by(ActivityLogModel.created_at, ActivityLogModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]
