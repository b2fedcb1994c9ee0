"""
joinery_engines.payments -- Offer/payment reconciliation arithmetic.

Responsibility:
    Pure arithmetic over a job's payment commitments: cheque and plan
    totals, the amount-weighted average cheque term, and the three
    closure balances (agreement, finance, service).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``today`` is always a
    parameter; the engine never reads the clock.

Invariants enforced:
    - Decimal-only arithmetic.
    - Agreement closes iff |plan_total - offer_total| <= tolerance and the
      declared cheque total (when given) equals the sum of cheque lines.
    - Finance and service closure require a balance of exactly zero.

Failure modes:
    - Never raises for business mismatches; every violated rule is an
      error issue on the returned ``ValidationResult`` and the signed
      difference is carried as ``discrepancy``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from joinery_kernel.domain.dtos import ValidationIssue, ValidationResult
from joinery_kernel.domain.job import (
    ZERO,
    ChequeLine,
    Discount,
    FinancePayments,
    PaymentPlan,
    ServiceDetails,
    ServicePayments,
)
from joinery_engines.tracer import traced_engine

DEFAULT_TOLERANCE = Decimal("0.01")
DEFAULT_LONG_CHEQUE_TERM_DAYS = 90

PLAN_TOTAL_MISMATCH = "PLAN_TOTAL_MISMATCH"
CHEQUE_TOTAL_MISMATCH = "CHEQUE_TOTAL_MISMATCH"
NEGATIVE_AMOUNT = "NEGATIVE_AMOUNT"
LONG_CHEQUE_TERM = "LONG_CHEQUE_TERM"
FINANCE_BALANCE_MISMATCH = "FINANCE_BALANCE_MISMATCH"
SERVICE_BALANCE_MISMATCH = "SERVICE_BALANCE_MISMATCH"
DISCOUNT_NOTE_REQUIRED = "DISCOUNT_NOTE_REQUIRED"


@dataclass(frozen=True)
class ReconciliationPolicy:
    """Tunable thresholds, built by services from ``LifecycleConfig``."""

    tolerance: Decimal = DEFAULT_TOLERANCE
    long_cheque_term_days: int = DEFAULT_LONG_CHEQUE_TERM_DAYS
    require_service_discount_note: bool = True
    require_finance_discount_note: bool = False


DEFAULT_POLICY = ReconciliationPolicy()


@dataclass(frozen=True)
class AgreementReconciliation:
    offer_total: Decimal
    cheque_total: Decimal
    plan_total: Decimal
    difference: Decimal
    average_cheque_days: int
    result: ValidationResult


@dataclass(frozen=True)
class FinanceSettlement:
    offer_total: Decimal
    pre_received: Decimal
    now_received: Decimal
    discount: Decimal
    balance: Decimal
    result: ValidationResult


@dataclass(frozen=True)
class ServiceSettlement:
    total_cost: Decimal
    paid: Decimal
    discount: Decimal
    balance: Decimal
    result: ValidationResult


def cheque_total(lines: Iterable[ChequeLine]) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


def plan_total(plan: PaymentPlan) -> Decimal:
    """cash + card + cheques + after-delivery."""
    return plan.cash + plan.card + cheque_total(plan.cheque_lines) + plan.after_delivery


def pre_received(plan: PaymentPlan | None) -> Decimal:
    """Amount collected at approval time (after-delivery excluded)."""
    if plan is None:
        return ZERO
    return plan.cash + plan.card + cheque_total(plan.cheque_lines)


def average_cheque_days(lines: Iterable[ChequeLine], today: date) -> int:
    """Amount-weighted mean of days until each cheque is due.

    Past-due cheques count as 0 days, as do cheques without a due date.
    Returns 0 when there are no cheques or their total is not positive.
    """
    lines = tuple(lines)
    total = cheque_total(lines)
    if total <= 0:
        return 0
    weighted = ZERO
    for line in lines:
        days = max(0, (line.due_date - today).days) if line.due_date else 0
        weighted += line.amount * days
    return int((weighted / total).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _negative_amounts(**amounts: Decimal) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            code=NEGATIVE_AMOUNT,
            message=f"{name.replace('_', ' ')} cannot be negative",
            field=name,
            details={"amount": str(value)},
        )
        for name, value in amounts.items()
        if value < 0
    ]


@traced_engine("payments.agreement", "1.0", fingerprint_fields=("offer_total", "plan"))
def reconcile_agreement(
    *,
    offer_total: Decimal,
    plan: PaymentPlan,
    today: date | None = None,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
) -> AgreementReconciliation:
    """Check that the payment plan covers the offer.

    ``difference`` is offer_total - plan_total: positive means the plan is
    short, negative means it over-collects.  The long-term warning is
    evaluated only when ``today`` is supplied.
    """
    cheques = cheque_total(plan.cheque_lines)
    total = plan_total(plan)
    difference = offer_total - total

    errors = _negative_amounts(
        cash=plan.cash,
        card=plan.card,
        after_delivery=plan.after_delivery,
    )
    errors += [
        ValidationIssue(
            code=NEGATIVE_AMOUNT,
            message=f"cheque #{index} amount cannot be negative",
            field=f"cheque_lines[{index - 1}].amount",
        )
        for index, line in enumerate(plan.cheque_lines, start=1)
        if line.amount < 0
    ]

    discrepancy = None
    if abs(difference) > policy.tolerance:
        discrepancy = difference
        errors.append(ValidationIssue(
            code=PLAN_TOTAL_MISMATCH,
            message=(
                f"payment plan total {total} does not match offer total "
                f"{offer_total} (difference {difference})"
            ),
            field="payment_plan",
            details={"plan_total": str(total), "offer_total": str(offer_total)},
        ))

    if plan.declared_cheque_total is not None and plan.declared_cheque_total != cheques:
        cheque_delta = plan.declared_cheque_total - cheques
        if discrepancy is None:
            discrepancy = cheque_delta
        errors.append(ValidationIssue(
            code=CHEQUE_TOTAL_MISMATCH,
            message=(
                f"declared cheque total {plan.declared_cheque_total} does not "
                f"match the cheque lines ({cheques})"
            ),
            field="declared_cheque_total",
            details={"difference": str(cheque_delta)},
        ))

    average_days = average_cheque_days(plan.cheque_lines, today) if today else 0
    warnings: list[ValidationIssue] = []
    if average_days > policy.long_cheque_term_days:
        warnings.append(ValidationIssue(
            code=LONG_CHEQUE_TERM,
            message=(
                f"average cheque term is {average_days} days "
                f"(over {policy.long_cheque_term_days})"
            ),
            field="cheque_lines",
            details={"average_days": average_days},
        ))

    return AgreementReconciliation(
        offer_total=offer_total,
        cheque_total=cheques,
        plan_total=total,
        difference=difference,
        average_cheque_days=average_days,
        result=ValidationResult(
            errors=tuple(errors),
            warnings=tuple(warnings),
            discrepancy=discrepancy,
        ),
    )


def _discount_issues(discount: Discount | None, require_note: bool) -> list[ValidationIssue]:
    if discount is None:
        return []
    issues = _negative_amounts(discount=discount.amount)
    if require_note and discount.amount != 0 and not discount.note.strip():
        issues.append(ValidationIssue(
            code=DISCOUNT_NOTE_REQUIRED,
            message="a discount requires a justification note",
            field="discount.note",
        ))
    return issues


@traced_engine("payments.finance", "1.0", fingerprint_fields=("offer_total", "payments", "discount"))
def settle_finance(
    *,
    offer_total: Decimal,
    plan: PaymentPlan | None,
    payments: FinancePayments,
    discount: Discount | None = None,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
) -> FinanceSettlement:
    """balance = offer_total - (pre_received + now_received + discount)."""
    received_before = pre_received(plan)
    received_now = payments.total
    discount_amount = discount.amount if discount else ZERO
    balance = offer_total - (received_before + received_now + discount_amount)

    errors = _negative_amounts(cash=payments.cash, card=payments.card, cheque=payments.cheque)
    errors += _discount_issues(discount, policy.require_finance_discount_note)
    if balance != 0:
        errors.append(ValidationIssue(
            code=FINANCE_BALANCE_MISMATCH,
            message=f"remaining balance must be zero (balance {balance})",
            field="payments",
            details={
                "pre_received": str(received_before),
                "now_received": str(received_now),
                "discount": str(discount_amount),
            },
        ))

    return FinanceSettlement(
        offer_total=offer_total,
        pre_received=received_before,
        now_received=received_now,
        discount=discount_amount,
        balance=balance,
        result=ValidationResult(
            errors=tuple(errors),
            discrepancy=balance if balance != 0 else None,
        ),
    )


def service_totals(service: ServiceDetails) -> tuple[Decimal, Decimal]:
    """(total_extra_cost, total_cost) with total_cost = fixed_fee + extras."""
    extras = sum((visit.extra_cost for visit in service.visits), ZERO)
    return extras, service.fixed_fee + extras


@traced_engine("payments.service", "1.0", fingerprint_fields=("total_cost", "payments", "discount"))
def settle_service(
    *,
    total_cost: Decimal,
    payments: ServicePayments,
    discount: Discount | None = None,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
) -> ServiceSettlement:
    """balance = total_cost - (cash + card + transfer + discount)."""
    paid = payments.total
    discount_amount = discount.amount if discount else ZERO
    balance = total_cost - (paid + discount_amount)

    errors = _negative_amounts(
        cash=payments.cash, card=payments.card, transfer=payments.transfer
    )
    errors += _discount_issues(discount, policy.require_service_discount_note)
    if balance != 0:
        errors.append(ValidationIssue(
            code=SERVICE_BALANCE_MISMATCH,
            message=f"remaining balance must be zero (balance {balance})",
            field="payments",
            details={"total_cost": str(total_cost), "paid": str(paid)},
        ))

    return ServiceSettlement(
        total_cost=total_cost,
        paid=paid,
        discount=discount_amount,
        balance=balance,
        result=ValidationResult(
            errors=tuple(errors),
            discrepancy=balance if balance != 0 else None,
        ),
    )
