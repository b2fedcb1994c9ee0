"""
joinery_engines.rejection -- Offer rejection and reactivation.

Reject snapshots the current offer as ``last_offer``; reactivate copies it
back, stamps the reactivation and clears the rejection.  Reactivation is
the only backward move of the standard flow (REJECTED -> OFFER_SENT).
"""

from __future__ import annotations

from datetime import date, datetime

from joinery_kernel.domain.flows import REACTIVATION_STATUS, REJECTED_STATUS
from joinery_kernel.domain.job import Job, Reactivation, Rejection, RejectionCategory
from joinery_kernel.domain.dtos import ValidationIssue, ValidationResult
from joinery_kernel.logging_config import get_logger

logger = get_logger("engines.rejection")

NOT_REJECTED = "NOT_REJECTED"


def reject_offer(
    job: Job,
    *,
    category: RejectionCategory,
    reason: str,
    now: datetime,
    follow_up_date: date | None = None,
) -> Job:
    """Move the job to the rejected terminal, keeping the offer as ``last_offer``."""
    rejection = Rejection(
        category=RejectionCategory(category),
        reason=reason.strip(),
        rejected_at=now,
        last_offer=job.offer,
        follow_up_date=follow_up_date,
    )
    return job.transitioned(REJECTED_STATUS, rejection=rejection)


def reactivate(job: Job, *, now: datetime) -> Job:
    """Restore the last offer and return the job to the offer decision.

    Raises:
        ValidationError: If the job carries no rejection record.
    """
    if job.rejection is None:
        ValidationResult.failure(ValidationIssue(
            code=NOT_REJECTED,
            message=f"job {job.id} has no rejection to reactivate from",
            field="rejection",
        )).raise_if_invalid(REACTIVATION_STATUS.value)

    rejection = job.rejection
    logger.info(
        "job_reactivated",
        extra={
            "job_id": job.id,
            "category": rejection.category.value,
            "rejected_at": rejection.rejected_at.isoformat(),
        },
    )
    return job.transitioned(
        REACTIVATION_STATUS,
        offer=rejection.last_offer,
        rejection=None,
        reactivation=Reactivation(reactivated_at=now, reactivated_from=rejection),
    )
