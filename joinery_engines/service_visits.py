"""
joinery_engines.service_visits -- Service visit ledger.

Responsibility:
    Drive the visits of a service job: schedule the first visit, start a
    visit, complete it (finalize to payment or continue servicing),
    schedule follow-up visits and close the job once paid.

Architecture position:
    Engines -- pure, zero I/O.  Times are parameters; the default visit
    time comes from configuration via the caller.

Invariants enforced:
    - A visit moves scheduled -> in_progress -> completed, never back.
    - Visit ids are 1-based and strictly increasing: a new visit takes
      max(existing ids) + 1, so ids are never reused.
    - ``total_cost = fixed_fee + sum(visit.extra_cost)`` whenever the job
      reaches the payment stage.

Failure modes:
    - ValidationError for missing appointment date, non-positive fixed fee,
      blank work note or negative extra cost.
    - VisitStateError when no visit is in the state an action needs.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from joinery_kernel.domain.dtos import ValidationIssue, ValidationResult
from joinery_kernel.domain.job import (
    ZERO,
    Discount,
    Job,
    JobStatus,
    PaymentStatus,
    ServiceDetails,
    ServicePayments,
    ServiceVisit,
    VisitStatus,
)
from joinery_kernel.exceptions import VisitStateError
from joinery_kernel.logging_config import get_logger
from joinery_engines.payments import service_totals
from joinery_engines.tracer import traced_engine

logger = get_logger("engines.service_visits")

DEFAULT_VISIT_TIME = "10:00"

FIELD_REQUIRED = "FIELD_REQUIRED"
FIXED_FEE_NOT_POSITIVE = "FIXED_FEE_NOT_POSITIVE"
NEGATIVE_EXTRA_COST = "NEGATIVE_EXTRA_COST"


class VisitOutcome(str, Enum):
    """What happens after a visit is completed."""

    FINALIZE = "finalize"
    CONTINUE = "continue"


def next_visit_id(visits: tuple[ServiceVisit, ...]) -> int:
    return max((visit.id for visit in visits), default=0) + 1


def _service(job: Job) -> ServiceDetails:
    return job.service or ServiceDetails()


def _required(value, field: str, label: str) -> list[ValidationIssue]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return [ValidationIssue(code=FIELD_REQUIRED, message=f"{label} is required", field=field)]
    return []


def _find_visit(job: Job, status: VisitStatus) -> int:
    for index, visit in enumerate(_service(job).visits):
        if visit.status == status:
            return index
    raise VisitStateError(job.id, status.value)


def _replace_visit(job: Job, index: int, visit: ServiceVisit) -> tuple[ServiceVisit, ...]:
    visits = list(_service(job).visits)
    visits[index] = visit
    return tuple(visits)


def schedule_service(
    job: Job,
    *,
    appointment_date: date | None,
    fixed_fee: Decimal,
    appointment_time: str | None = None,
    note: str = "",
    default_time: str = DEFAULT_VISIT_TIME,
) -> Job:
    """Record the fixed fee and create the first visit."""
    errors = _required(appointment_date, "appointment_date", "appointment date")
    if fixed_fee is None or fixed_fee <= 0:
        errors.append(ValidationIssue(
            code=FIXED_FEE_NOT_POSITIVE,
            message="service fixed fee must be greater than zero",
            field="fixed_fee",
        ))
    ValidationResult(errors=tuple(errors)).raise_if_invalid(JobStatus.SERVICE_SCHEDULED.value)

    service = _service(job)
    visit = ServiceVisit(
        id=next_visit_id(service.visits),
        appointment_date=appointment_date,
        appointment_time=appointment_time or default_time,
    )
    return job.transitioned(
        JobStatus.SERVICE_SCHEDULED,
        service=replace(
            service,
            fixed_fee=fixed_fee,
            note=note,
            visits=service.visits + (visit,),
        ),
    )


def start_visit(job: Job, *, visited_at: datetime) -> Job:
    """Technician is on the way: stamp ``visited_at`` on the scheduled visit."""
    index = _find_visit(job, VisitStatus.SCHEDULED)
    visit = _service(job).visits[index]
    visits = _replace_visit(
        job, index, replace(visit, visited_at=visited_at, status=VisitStatus.IN_PROGRESS)
    )
    return job.transitioned(
        JobStatus.SERVICE_IN_PROGRESS,
        service=replace(_service(job), visits=visits),
    )


@traced_engine("service_visits.complete", "1.0", fingerprint_fields=("outcome", "extra_cost"))
def complete_visit(
    job: Job,
    *,
    work_note: str,
    now: datetime,
    outcome: VisitOutcome,
    materials: str = "",
    extra_cost: Decimal = ZERO,
) -> Job:
    """Complete the in-progress visit.

    FINALIZE recomputes the totals and moves to payment; CONTINUE moves the
    job to SERVICE_ONGOING awaiting a follow-up visit.
    """
    errors = _required(work_note, "work_note", "work note")
    if extra_cost < 0:
        errors.append(ValidationIssue(
            code=NEGATIVE_EXTRA_COST,
            message="extra cost cannot be negative",
            field="extra_cost",
            details={"amount": str(extra_cost)},
        ))
    target = (
        JobStatus.SERVICE_PAYMENT_PENDING
        if outcome == VisitOutcome.FINALIZE
        else JobStatus.SERVICE_ONGOING
    )
    ValidationResult(errors=tuple(errors)).raise_if_invalid(target.value)

    index = _find_visit(job, VisitStatus.IN_PROGRESS)
    visit = _service(job).visits[index]
    visits = _replace_visit(job, index, replace(
        visit,
        work_note=work_note,
        materials=materials,
        extra_cost=extra_cost,
        status=VisitStatus.COMPLETED,
        completed_at=now,
    ))
    service = replace(_service(job), visits=visits)

    if outcome == VisitOutcome.FINALIZE:
        total_extra, total_cost = service_totals(service)
        service = replace(service, total_extra_cost=total_extra, total_cost=total_cost)

    logger.info(
        "service_visit_completed",
        extra={
            "job_id": job.id,
            "visit_id": visit.id,
            "outcome": outcome.value,
            "extra_cost": str(extra_cost),
        },
    )
    return job.transitioned(target, service=service)


def schedule_follow_up(
    job: Job,
    *,
    appointment_date: date | None,
    appointment_time: str | None = None,
    note: str = "",
    visited_at: datetime | None = None,
    default_time: str = DEFAULT_VISIT_TIME,
) -> Job:
    """Append the next visit; with a go-date it starts immediately."""
    errors = _required(appointment_date, "appointment_date", "appointment date")
    target = JobStatus.SERVICE_IN_PROGRESS if visited_at else JobStatus.SERVICE_SCHEDULED
    ValidationResult(errors=tuple(errors)).raise_if_invalid(target.value)

    service = _service(job)
    visit = ServiceVisit(
        id=next_visit_id(service.visits),
        appointment_date=appointment_date,
        appointment_time=appointment_time or default_time,
        note=note,
        visited_at=visited_at,
        status=VisitStatus.IN_PROGRESS if visited_at else VisitStatus.SCHEDULED,
    )
    return job.transitioned(target, service=replace(service, visits=service.visits + (visit,)))


def close_service(
    job: Job,
    *,
    payments: ServicePayments,
    now: datetime,
    discount: Discount | None = None,
) -> Job:
    """Record payments and mark the service paid.  Balance is gated by the validator."""
    return job.transitioned(
        JobStatus.SERVICE_CLOSED,
        service=replace(
            _service(job),
            payments=payments,
            discount=discount,
            payment_status=PaymentStatus.PAID,
            completed_at=now,
        ),
    )
