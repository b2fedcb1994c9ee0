"""
Data transfer objects passed between engines, services and callers.

- ValidationIssue / ValidationResult: outcome of transition gating.
- ActivityEntry: the audit record produced by every accepted transition.
- TransitionOutcome: updated job snapshot plus its audit entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from joinery_kernel.domain.job import Job, JobStatus
from joinery_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class ValidationIssue:
    """
    A single violated rule (or non-blocking warning).

    Carries a machine-readable code, human-readable message, optional field
    path, and optional details dict.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of gating a transition.

    Contract:
        ``errors`` block the transition; ``warnings`` never do.
        ``discrepancy`` holds the signed numeric difference when a
        reconciliation rule failed.

    Guarantees:
        - bool(result) == result.is_valid
    """

    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    discrepancy: Decimal | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @classmethod
    def success(cls, *warnings: ValidationIssue) -> ValidationResult:
        return cls(errors=(), warnings=tuple(warnings))

    @classmethod
    def failure(
        cls, *errors: ValidationIssue, discrepancy: Decimal | None = None
    ) -> ValidationResult:
        return cls(errors=tuple(errors), discrepancy=discrepancy)

    def merge(self, other: ValidationResult) -> ValidationResult:
        """Combine two results; the first non-None discrepancy wins."""
        return ValidationResult(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
            discrepancy=self.discrepancy if self.discrepancy is not None else other.discrepancy,
        )

    def raise_if_invalid(self, target_status: str | None = None) -> None:
        if self.errors:
            raise ValidationError(
                self.errors,
                discrepancy=self.discrepancy,
                target_status=target_status,
            )

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class ActivityEntry:
    """Audit record for one accepted transition."""

    job_id: str
    action: str
    detail: str
    created_at: datetime
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionOutcome:
    """
    Result of an accepted transition.

    ``advance_view`` is False for intermediate statuses, telling the view
    cursor to stay on the stage the operator is looking at.
    """

    job: Job
    previous_status: JobStatus
    entry: ActivityEntry
    advance_view: bool = True
    warnings: tuple[ValidationIssue, ...] = ()
    payload: Any = None
