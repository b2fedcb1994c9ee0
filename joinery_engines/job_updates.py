"""
joinery_engines.job_updates -- Typed update builders for the remaining sub-objects.

Each builder takes the previous immutable ``Job`` and the typed inputs of
one operation and returns the next snapshot.  Required-field checks raise
``ValidationError``; reachability and guard rules are the validator's job.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

from joinery_kernel.domain.dtos import ValidationIssue, ValidationResult
from joinery_kernel.domain.job import (
    AssemblyRecord,
    Discount,
    FinancePayments,
    FinanceRecord,
    Job,
    JobStatus,
    Measure,
    PaymentPlan,
    ProductionRecord,
)

FIELD_REQUIRED = "FIELD_REQUIRED"
INVALID_PRODUCTION_STATUS = "INVALID_PRODUCTION_STATUS"

PRODUCTION_STATUSES = (
    JobStatus.IN_PRODUCTION,
    JobStatus.PRODUCTION_DEFERRED,
    JobStatus.READY_FOR_ASSEMBLY,
)


def _require(value, field: str, label: str, target: JobStatus) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        ValidationResult.failure(ValidationIssue(
            code=FIELD_REQUIRED,
            message=f"{label} is required",
            field=field,
        )).raise_if_invalid(target.value)


# Measurement


def schedule_measure(job: Job, *, appointment: datetime | None, note: str = "") -> Job:
    _require(appointment, "measure.appointment", "measurement appointment", JobStatus.MEASURE_SCHEDULED)
    return job.transitioned(
        JobStatus.MEASURE_SCHEDULED,
        measure=replace(job.measure, appointment=appointment, note=note or job.measure.note),
    )


def confirm_measure(job: Job, *, note: str = "") -> Job:
    return job.transitioned(
        JobStatus.MEASURE_TAKEN,
        measure=replace(job.measure, confirmed=True, note=note or job.measure.note),
    )


def record_customer_measure(job: Job, *, note: str = "") -> Job:
    return job.transitioned(
        JobStatus.CUSTOMER_MEASURE_UPLOADED,
        measure=Measure(note=note or job.measure.note, appointment=job.measure.appointment),
    )


def start_pricing(job: Job) -> Job:
    return job.transitioned(JobStatus.PRICING)


# Agreement


def complete_agreement(job: Job, *, plan: PaymentPlan) -> Job:
    """Store the approved payment plan.  Balance is gated by the validator."""
    return job.transitioned(JobStatus.AGREEMENT_DONE, payment_plan=plan)


# Production / assembly


def update_production(
    job: Job,
    *,
    status: JobStatus,
    now: datetime,
    deferred_until: date | None = None,
) -> Job:
    status = JobStatus(status)
    if status not in PRODUCTION_STATUSES:
        ValidationResult.failure(ValidationIssue(
            code=INVALID_PRODUCTION_STATUS,
            message=f"{status.value} is not a production status",
            field="status",
        )).raise_if_invalid(status.value)
    if status == JobStatus.PRODUCTION_DEFERRED:
        _require(deferred_until, "production.deferred_until", "deferral date", status)
    return job.transitioned(
        status,
        production=ProductionRecord(
            status=status,
            updated_at=now,
            deferred_until=deferred_until if status == JobStatus.PRODUCTION_DEFERRED else None,
        ),
    )


def schedule_assembly(
    job: Job,
    *,
    scheduled_for: datetime | None,
    team: str = "",
    note: str = "",
) -> Job:
    _require(scheduled_for, "assembly.scheduled_for", "assembly date", JobStatus.ASSEMBLY_SCHEDULED)
    return job.transitioned(
        JobStatus.ASSEMBLY_SCHEDULED,
        assembly=AssemblyRecord(scheduled_for=scheduled_for, team=team, note=note),
    )


def complete_assembly(job: Job, *, now: datetime, note: str = "") -> Job:
    assembly = job.assembly or AssemblyRecord()
    return job.transitioned(
        JobStatus.ACCOUNTING_PENDING,
        assembly=replace(assembly, completed_at=now, note=note or assembly.note),
    )


# Finance


def close_finance(
    job: Job,
    *,
    payments: FinancePayments,
    now: datetime,
    discount: Discount | None = None,
) -> Job:
    """Record the closing payments.  Balance is gated by the validator."""
    return job.transitioned(
        JobStatus.CLOSED,
        finance=FinanceRecord(
            total=job.offer.total,
            payments=payments,
            closed_at=now,
            discount=discount,
        ),
    )
