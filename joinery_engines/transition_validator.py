"""
joinery_engines.transition_validator -- Transition gating.

Responsibility:
    Decide whether a job may move from its current status to a target
    status.  Reachability comes from the flow's transition table; each
    guarded transition is checked by the rule registered for its guard.

Architecture position:
    Engines -- pure, zero I/O.  Document membership and proposed
    sub-objects (offer, payment plan, closing payments) are inputs.

Invariants enforced:
    - Terminal jobs accept no transition (JOB_CLOSED).
    - A (current, target[, action]) pair absent from the table is refused
      (TRANSITION_NOT_ALLOWED); a rejected job therefore only accepts
      ``reactivate``.
    - Every violated rule of the guard is reported, not only the first.

Failure modes:
    - UnmappedStatusError if the job's current status is not owned by its
      flow (a configuration error, never a validation result).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from joinery_kernel.domain.documents import (
    DocumentRef,
    document_types,
    measurement_drawing_type,
    technical_drawing_type,
)
from joinery_kernel.domain.dtos import ValidationIssue, ValidationResult
from joinery_kernel.domain.flows import (
    FINANCE_BALANCED,
    MEASUREMENT_READY,
    OFFER_POSITIVE,
    PAYMENT_PLAN_BALANCED,
    REJECTION_RECORDED,
    SERVICE_BALANCED,
    flow_for,
)
from joinery_kernel.domain.job import (
    ZERO,
    Discount,
    FinancePayments,
    Job,
    JobStatus,
    Offer,
    PaymentPlan,
    RejectionCategory,
    ServicePayments,
    StartType,
)
from joinery_kernel.domain.workflow import Transition
from joinery_kernel.logging_config import get_logger
from joinery_engines.payments import (
    DEFAULT_POLICY,
    ReconciliationPolicy,
    reconcile_agreement,
    settle_finance,
    settle_service,
)
from joinery_engines.stage_flow import classify
from joinery_engines.tracer import traced_engine

logger = get_logger("engines.transition_validator")

JOB_CLOSED = "JOB_CLOSED"
TRANSITION_NOT_ALLOWED = "TRANSITION_NOT_ALLOWED"
MISSING_DOCUMENT = "MISSING_DOCUMENT"
MEASUREMENT_NOT_CONFIRMED = "MEASUREMENT_NOT_CONFIRMED"
OFFER_NOT_POSITIVE = "OFFER_NOT_POSITIVE"
NEGATIVE_ROLE_PRICE = "NEGATIVE_ROLE_PRICE"
PAYMENT_PLAN_MISSING = "PAYMENT_PLAN_MISSING"
SERVICE_DETAILS_MISSING = "SERVICE_DETAILS_MISSING"
REJECTION_CATEGORY_REQUIRED = "REJECTION_CATEGORY_REQUIRED"
REJECTION_REASON_REQUIRED = "REJECTION_REASON_REQUIRED"


@dataclass(frozen=True)
class TransitionRequest:
    """
    Everything a guard may need besides the job itself.

    Proposed sub-objects (``offer``, ``payment_plan``) take precedence over
    the job's own when present.
    """

    target: JobStatus
    action: str | None = None
    documents: tuple[DocumentRef, ...] = ()
    offer: Offer | None = None
    payment_plan: PaymentPlan | None = None
    finance_payments: FinancePayments | None = None
    service_payments: ServicePayments | None = None
    discount: Discount | None = None
    rejection_category: RejectionCategory | None = None
    rejection_reason: str = ""
    today: date | None = None


GuardRule = Callable[[Job, TransitionRequest, ReconciliationPolicy], ValidationResult]


# -----------------------------------------------------------------------------
# Guard rules
# -----------------------------------------------------------------------------


def check_measurement_ready(
    job: Job, request: TransitionRequest, policy: ReconciliationPolicy
) -> ValidationResult:
    """Customer-supplied: both drawings per role.  Appointment: confirmed."""
    if job.start_type == StartType.CUSTOMER_SUPPLIED_MEASURE:
        present = document_types(request.documents)
        errors = []
        for role in job.roles:
            for kind, doc_type in (
                ("measurement drawing", measurement_drawing_type(role.id)),
                ("technical drawing", technical_drawing_type(role.id)),
            ):
                if doc_type not in present:
                    errors.append(ValidationIssue(
                        code=MISSING_DOCUMENT,
                        message=f"{kind} missing for role {role.name}",
                        field="documents",
                        details={"role_id": role.id, "type": doc_type},
                    ))
        return ValidationResult.failure(*errors) if errors else ValidationResult.success()

    if not job.measure.confirmed:
        return ValidationResult.failure(ValidationIssue(
            code=MEASUREMENT_NOT_CONFIRMED,
            message="measurement must be confirmed before pricing",
            field="measure.confirmed",
        ))
    return ValidationResult.success()


def offer_amount(offer: Offer) -> Decimal:
    """Sum of role prices, or the explicit total when there are none."""
    if offer.role_prices:
        return sum(offer.role_prices.values(), ZERO)
    return offer.total


def check_offer_positive(
    job: Job, request: TransitionRequest, policy: ReconciliationPolicy
) -> ValidationResult:
    offer = request.offer or job.offer
    errors = [
        ValidationIssue(
            code=NEGATIVE_ROLE_PRICE,
            message=f"price for role {role_id} cannot be negative",
            field=f"role_prices.{role_id}",
            details={"amount": str(price)},
        )
        for role_id, price in offer.role_prices.items()
        if price < 0
    ]
    amount = offer_amount(offer)
    if amount <= 0:
        errors.append(ValidationIssue(
            code=OFFER_NOT_POSITIVE,
            message=f"offer total must be greater than zero (got {amount})",
            field="offer.total",
        ))
    return ValidationResult.failure(*errors) if errors else ValidationResult.success()


def check_payment_plan_balanced(
    job: Job, request: TransitionRequest, policy: ReconciliationPolicy
) -> ValidationResult:
    plan = request.payment_plan or job.payment_plan
    if plan is None:
        return ValidationResult.failure(ValidationIssue(
            code=PAYMENT_PLAN_MISSING,
            message="a payment plan is required to complete the agreement",
            field="payment_plan",
        ))
    offer = request.offer or job.offer
    return reconcile_agreement(
        offer_total=offer.total,
        plan=plan,
        today=request.today,
        policy=policy,
    ).result


def check_finance_balanced(
    job: Job, request: TransitionRequest, policy: ReconciliationPolicy
) -> ValidationResult:
    return settle_finance(
        offer_total=job.offer.total,
        plan=job.payment_plan,
        payments=request.finance_payments or FinancePayments(),
        discount=request.discount,
        policy=policy,
    ).result


def check_service_balanced(
    job: Job, request: TransitionRequest, policy: ReconciliationPolicy
) -> ValidationResult:
    if job.service is None:
        return ValidationResult.failure(ValidationIssue(
            code=SERVICE_DETAILS_MISSING,
            message="service details are missing",
            field="service",
        ))
    return settle_service(
        total_cost=job.service.total_cost,
        payments=request.service_payments or ServicePayments(),
        discount=request.discount,
        policy=policy,
    ).result


def check_rejection_recorded(
    job: Job, request: TransitionRequest, policy: ReconciliationPolicy
) -> ValidationResult:
    errors = []
    if request.rejection_category is None:
        errors.append(ValidationIssue(
            code=REJECTION_CATEGORY_REQUIRED,
            message="a rejection category is required",
            field="rejection.category",
        ))
    if not request.rejection_reason.strip():
        errors.append(ValidationIssue(
            code=REJECTION_REASON_REQUIRED,
            message="a rejection reason is required",
            field="rejection.reason",
        ))
    return ValidationResult.failure(*errors) if errors else ValidationResult.success()


GUARD_RULES: dict[str, GuardRule] = {
    MEASUREMENT_READY.name: check_measurement_ready,
    OFFER_POSITIVE.name: check_offer_positive,
    PAYMENT_PLAN_BALANCED.name: check_payment_plan_balanced,
    FINANCE_BALANCED.name: check_finance_balanced,
    SERVICE_BALANCED.name: check_service_balanced,
    REJECTION_RECORDED.name: check_rejection_recorded,
}


# -----------------------------------------------------------------------------
# Entry points
# -----------------------------------------------------------------------------


def resolve_transition(job: Job, target: JobStatus, action: str | None = None) -> Transition | None:
    """The table entry for (job.status -> target), or None."""
    flow = flow_for(job.start_type)
    classify(job.status, flow)
    return flow.find_transition(job.status, target, action)


@traced_engine("transition_validator", "1.0", fingerprint_fields=("request",))
def check_transition(
    job: Job,
    *,
    request: TransitionRequest,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
) -> ValidationResult:
    """Gate one transition request against the job snapshot."""
    flow = flow_for(job.start_type)
    classify(job.status, flow)

    if flow.is_terminal(job.status):
        return ValidationResult.failure(ValidationIssue(
            code=JOB_CLOSED,
            message=f"job {job.id} is closed ({job.status.value})",
            field="status",
        ))

    transition = flow.find_transition(job.status, request.target, request.action)
    if transition is None:
        action = f" via {request.action}" if request.action else ""
        logger.info(
            "transition_not_allowed",
            extra={
                "job_id": job.id,
                "from_status": job.status.value,
                "to_status": JobStatus(request.target).value,
                "action": request.action,
            },
        )
        return ValidationResult.failure(ValidationIssue(
            code=TRANSITION_NOT_ALLOWED,
            message=(
                f"cannot move from {job.status.value} to "
                f"{JobStatus(request.target).value}{action}"
            ),
            field="status",
        ))

    if transition.guard is None:
        return ValidationResult.success()

    rule = GUARD_RULES[transition.guard.name]
    return rule(job, request, policy)


def validate_transition(
    job: Job,
    target: JobStatus,
    *,
    action: str | None = None,
    documents: Iterable[DocumentRef] = (),
    offer: Offer | None = None,
    payment_plan: PaymentPlan | None = None,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
    **extra,
) -> ValidationResult:
    """Convenience wrapper building the ``TransitionRequest``."""
    request = TransitionRequest(
        target=target,
        action=action,
        documents=tuple(documents),
        offer=offer,
        payment_plan=payment_plan,
        **extra,
    )
    return check_transition(job, request=request, policy=policy)
