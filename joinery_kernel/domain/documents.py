"""
Job documents as seen by the lifecycle core.

Documents are stored elsewhere; the core only reads their ``type`` tokens,
which encode role and purpose (``measure_<roleId>``, ``technical_<roleId>``).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

CONTRACT = "contract"
SERVICE_BEFORE = "service_before"
SERVICE_AFTER = "service_after"


def measurement_drawing_type(role_id: str) -> str:
    return f"measure_{role_id}"


def technical_drawing_type(role_id: str) -> str:
    return f"technical_{role_id}"


@dataclass(frozen=True)
class DocumentRef:
    id: str
    job_id: str
    type: str
    description: str = ""
    original_name: str = ""


def document_types(documents: Iterable[DocumentRef]) -> frozenset[str]:
    """Set of type tokens present among ``documents``."""
    return frozenset(doc.type for doc in documents)
