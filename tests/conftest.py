"""
Pytest fixtures for the joinery lifecycle test suite.

Provides:
- Structured logging configured for the run, plus a JSON log capture
- A deterministic clock
- In-memory job / stock / document / log stores implementing the
  collaborator protocols, with failure injection
- A lifecycle controller wired to those stores
- In-memory SQLite engine and per-test rollback session for the SQL stores
"""

import json
import logging
import threading
from dataclasses import replace
from datetime import UTC, datetime
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from joinery_config import get_active_config
from joinery_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from joinery_kernel.domain.clock import DeterministicClock
from joinery_kernel.domain.documents import DocumentRef
from joinery_kernel.exceptions import JobNotFoundError, LoggingError
from joinery_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from joinery_services import JobLifecycleController

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture joinery logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, controller):
            controller.start_pricing(job_id)
            logs = captured_logs()
            assert any(r["message"] == "transition_accepted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("joinery")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock / config
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture(scope="session")
def lifecycle_config():
    return get_active_config()


# =============================================================================
# In-memory collaborators
# =============================================================================


class InMemoryJobStore:
    """Job store keeping snapshots in a dict.

    ``fail_on`` names a method that raises ``RuntimeError(fail_message)``;
    ``calls`` records every write as (method, job_id).
    """

    _WRITES = (
        "update_job_status",
        "update_job_measure",
        "update_production_status",
        "schedule_assembly",
        "complete_assembly",
        "close_finance",
        "update_stock_status",
        "start_job_approval",
    )

    def __init__(self):
        self.jobs = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: str | None = None
        self.fail_message = "store unavailable"
        for name in self._WRITES:
            setattr(self, name, self._writer(name))

    def _check(self, name: str) -> None:
        if self.fail_on == name:
            raise RuntimeError(self.fail_message)

    def _writer(self, name: str):
        def write(job_id, job):
            self._check(name)
            if job_id not in self.jobs:
                raise JobNotFoundError(job_id)
            self.calls.append((name, job_id))
            self.jobs[job_id] = job
            return job

        return write

    def get_job(self, job_id):
        self._check("get_job")
        if job_id not in self.jobs:
            raise JobNotFoundError(job_id)
        return self.jobs[job_id]

    def create_job(self, job):
        self._check("create_job")
        self.calls.append(("create_job", job.id))
        self.jobs[job.id] = job
        return job

    def put(self, job):
        """Seed a snapshot directly (test setup)."""
        self.jobs[job.id] = job
        return job


class InMemoryStockStore:
    """Stock store with a lock standing in for per-row locking."""

    def __init__(self):
        self.items = {}
        self._lock = threading.Lock()

    def put(self, *items):
        for item in items:
            self.items[item.id] = item

    def get_stock_items(self):
        return list(self.items.values())

    def apply_reservation(self, item_ids, plan):
        with self._lock:
            snapshot = {item_id: self.items[item_id] for item_id in item_ids if item_id in self.items}
            result = plan(snapshot)
            for item in result.items:
                self.items[item.id] = item
            return result


class InMemoryDocumentStore:
    def __init__(self):
        self.documents: list[DocumentRef] = []
        self._next = 1

    def get_job_documents(self, job_id):
        return [doc for doc in self.documents if doc.job_id == job_id]

    def upload_document(self, file, job_id, doc_type, description=""):
        doc = DocumentRef(
            id=f"doc-{self._next}",
            job_id=job_id,
            type=doc_type,
            description=description,
            original_name=getattr(file, "name", str(file)),
        )
        self._next += 1
        self.documents.append(doc)
        return doc

    def delete_document(self, document_id):
        self.documents = [doc for doc in self.documents if doc.id != document_id]

    def get_document_download_url(self, document_id):
        return f"memory://documents/{document_id}"


class InMemoryLogStore:
    def __init__(self):
        self.entries = []
        self.fail = False

    def add_job_log(self, entry):
        if self.fail:
            raise LoggingError(entry.job_id, "log store unavailable")
        self.entries.append(entry)

    def get_job_logs(self, job_id):
        return [entry for entry in self.entries if entry.job_id == job_id]


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def stock_store() -> InMemoryStockStore:
    return InMemoryStockStore()


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def log_store() -> InMemoryLogStore:
    return InMemoryLogStore()


@pytest.fixture
def controller(job_store, stock_store, document_store, log_store, clock, lifecycle_config):
    ids = iter(f"po-{n}" for n in range(1, 1000))
    return JobLifecycleController(
        job_store,
        stock=stock_store,
        documents=document_store,
        logs=log_store,
        clock=clock,
        config=lifecycle_config,
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def seed_job(job_store):
    """Put a job into the store in a given status: ``seed_job(job, status=...)``."""

    def _seed(job, **changes):
        return job_store.put(replace(job, **changes) if changes else job)

    return _seed


# =============================================================================
# SQLite engine / session for SQL stores
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test (StaticPool keeps one connection)."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()
