"""
Collaborator contracts consumed by the lifecycle controller.

Each store is a structural ``Protocol``; any object with these methods
works (HTTP clients, SQLAlchemy-backed stores, in-memory fakes).  Job
store writes take the job id plus the full next snapshot and return the
snapshot the store actually persisted.

Failure contract: a store signals failure by raising.  The controller
surfaces it as ``RemoteError`` with the raw message and never retries.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from joinery_kernel.domain.documents import DocumentRef
from joinery_kernel.domain.dtos import ActivityEntry
from joinery_kernel.domain.job import Job
from joinery_kernel.domain.stock import StockItem

T = TypeVar("T")


@runtime_checkable
class JobStore(Protocol):
    """Persists job snapshots.  Every write returns the stored snapshot."""

    def get_job(self, job_id: str) -> Job:
        """Raises JobNotFoundError (or any store error) if unknown."""
        ...

    def create_job(self, job: Job) -> Job: ...

    def update_job_status(self, job_id: str, job: Job) -> Job: ...

    def update_job_measure(self, job_id: str, job: Job) -> Job: ...

    def update_production_status(self, job_id: str, job: Job) -> Job: ...

    def schedule_assembly(self, job_id: str, job: Job) -> Job: ...

    def complete_assembly(self, job_id: str, job: Job) -> Job: ...

    def close_finance(self, job_id: str, job: Job) -> Job: ...

    def update_stock_status(self, job_id: str, job: Job) -> Job: ...

    def start_job_approval(self, job_id: str, job: Job) -> Job: ...


@runtime_checkable
class StockStore(Protocol):
    """Stock snapshot plus atomic per-item reservation."""

    def get_stock_items(self) -> list[StockItem]: ...

    def apply_reservation(
        self,
        item_ids: Sequence[str],
        plan: Callable[[dict[str, StockItem]], T],
    ) -> T:
        """Lock ``item_ids``, run ``plan`` on the fresh snapshot, persist its items."""
        ...


@runtime_checkable
class DocumentStore(Protocol):
    def get_job_documents(self, job_id: str) -> list[DocumentRef]: ...

    def upload_document(
        self, file: Any, job_id: str, doc_type: str, description: str = ""
    ) -> DocumentRef: ...

    def delete_document(self, document_id: str) -> None: ...

    def get_document_download_url(self, document_id: str) -> str: ...


@runtime_checkable
class LogStore(Protocol):
    def add_job_log(self, entry: ActivityEntry) -> None:
        """Append one entry.  May raise LoggingError."""
        ...

    def get_job_logs(self, job_id: str) -> list[ActivityEntry]: ...
