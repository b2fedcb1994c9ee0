"""
joinery_engines.negotiation -- Offer decisions and the negotiation ledger.

Responsibility:
    Submit an offer, accept it as-is, or apply one discount round.  A
    discount round appends an immutable ``NegotiationRecord`` to the
    offer's ledger and replaces the offer's total and role prices.

Architecture position:
    Engines -- pure, zero I/O.  ``now`` / ``today`` are parameters.

Invariants enforced:
    - The ledger is append-only: each round adds exactly one record and
      earlier records are carried over untouched.
    - ``final_total = original_total - discount_total`` and the new role
      prices always sum to ``final_total``.
    - Role prices that end up negative are NOT clamped; they come back as
      NEGATIVE_ROLE_PRICE warnings.

Failure modes:
    - ValidationError for a negative discount or a discount on a role the
      offer does not price.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal

from joinery_kernel.domain.dtos import ValidationIssue, ValidationResult
from joinery_kernel.domain.job import ZERO, Job, JobStatus, NegotiationRecord, Offer
from joinery_kernel.logging_config import get_logger
from joinery_engines.tracer import traced_engine

logger = get_logger("engines.negotiation")

NEGATIVE_DISCOUNT = "NEGATIVE_DISCOUNT"
UNKNOWN_ROLE = "UNKNOWN_ROLE"
NEGATIVE_ROLE_PRICE = "NEGATIVE_ROLE_PRICE"
NOTHING_TO_NEGOTIATE = "NOTHING_TO_NEGOTIATE"


@dataclass(frozen=True)
class NegotiationResult:
    job: Job
    record: NegotiationRecord
    warnings: tuple[ValidationIssue, ...] = ()


def build_offer(
    *,
    role_ids: Iterable[str] = (),
    role_prices: Mapping[str, Decimal] | None = None,
    total: Decimal | None = None,
    notified_date: date | None = None,
) -> Offer:
    """Offer from per-role prices (roles without a price count as zero) or a total."""
    if role_prices:
        prices = {role_id: Decimal(price) for role_id, price in role_prices.items()}
        for role_id in role_ids:
            prices.setdefault(role_id, ZERO)
        return Offer(
            total=sum(prices.values(), ZERO),
            role_prices=prices,
            notified_date=notified_date,
        )
    return Offer(total=total if total is not None else ZERO, notified_date=notified_date)


def submit_offer(job: Job, offer: Offer, *, today: date) -> Job:
    """Record the offer as sent; ``notified_date`` defaults to ``today``."""
    if offer.notified_date is None:
        offer = replace(offer, notified_date=today)
    offer = replace(offer, negotiation_history=job.offer.negotiation_history)
    return job.transitioned(JobStatus.OFFER_SENT, offer=offer)


def accept_offer(job: Job, *, now: datetime) -> Job:
    """Customer accepts the offer unchanged."""
    return job.transitioned(
        JobStatus.AGREEMENT_IN_PROGRESS,
        offer=replace(job.offer, agreed_date=now),
    )


def check_discounts(offer: Offer, role_discounts: Mapping[str, Decimal]) -> ValidationResult:
    errors = []
    if not role_discounts:
        errors.append(ValidationIssue(
            code=NOTHING_TO_NEGOTIATE,
            message="at least one role discount is required",
            field="role_discounts",
        ))
    for role_id, amount in role_discounts.items():
        if amount < 0:
            errors.append(ValidationIssue(
                code=NEGATIVE_DISCOUNT,
                message=f"discount for role {role_id} cannot be negative",
                field=f"role_discounts.{role_id}",
                details={"amount": str(amount)},
            ))
        if role_id not in offer.role_prices:
            errors.append(ValidationIssue(
                code=UNKNOWN_ROLE,
                message=f"offer has no price for role {role_id}",
                field=f"role_discounts.{role_id}",
            ))
    return ValidationResult.failure(*errors) if errors else ValidationResult.success()


@traced_engine("negotiation", "1.0", fingerprint_fields=("role_discounts",))
def negotiate(
    job: Job,
    *,
    role_discounts: Mapping[str, Decimal],
    now: datetime,
) -> NegotiationResult:
    """Apply one discount round and move the job into agreement.

    Raises:
        ValidationError: If any discount is negative or names an unpriced role.
    """
    offer = job.offer
    check_discounts(offer, role_discounts).raise_if_invalid(
        JobStatus.AGREEMENT_IN_PROGRESS.value
    )

    discounts = {role_id: Decimal(amount) for role_id, amount in role_discounts.items()}
    new_prices = {
        role_id: price - discounts.get(role_id, ZERO)
        for role_id, price in offer.role_prices.items()
    }
    discount_total = sum(discounts.values(), ZERO)
    final_total = offer.total - discount_total

    record = NegotiationRecord(
        negotiated_at=now,
        original_total=offer.total,
        discount_total=discount_total,
        final_total=final_total,
        role_discounts=discounts,
    )

    warnings = tuple(
        ValidationIssue(
            code=NEGATIVE_ROLE_PRICE,
            message=f"price for role {role_id} is negative after discount ({price})",
            field=f"role_prices.{role_id}",
            details={"price": str(price)},
        )
        for role_id, price in new_prices.items()
        if price < 0
    )
    for warning in warnings:
        logger.warning(
            "negotiation_negative_role_price",
            extra={"job_id": job.id, "field": warning.field, **(warning.details or {})},
        )

    updated = job.transitioned(
        JobStatus.AGREEMENT_IN_PROGRESS,
        offer=replace(
            offer,
            total=final_total,
            role_prices=new_prices,
            negotiation_history=offer.negotiation_history + (record,),
            agreed_date=now,
        ),
    )
    return NegotiationResult(job=updated, record=record, warnings=warnings)
