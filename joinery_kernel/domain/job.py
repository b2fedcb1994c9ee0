"""
Job Domain Models (``joinery_kernel.domain.job``).

Responsibility
--------------
Frozen value objects for a fabrication/installation job and everything that
accumulates on it over its life: measurement, offer and its negotiation
ledger, payment plan, rejection, backorder lines, production, assembly,
service visits and financial closure.

Architecture
------------
Layer: **Kernel domain** -- pure data.  Every lifecycle operation builds a
*new* ``Job`` with ``Job.transitioned`` / ``dataclasses.replace``; the
caller's snapshot is never mutated.

Invariants
----------
- ``Offer.total == sum(Offer.role_prices)`` whenever role prices are present.
- ``PendingLine.missing == requested_qty - available_at_request > 0``.
- ``ServiceVisit.extra_cost >= 0`` and visit ids are positive.
- All monetary fields are ``Decimal`` -- never ``float``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

ZERO = Decimal("0")


class StartType(str, Enum):
    """How a job enters the system; selects the stage flow."""

    MEASURE_APPOINTMENT = "MEASURE_APPOINTMENT"
    CUSTOMER_SUPPLIED_MEASURE = "CUSTOMER_SUPPLIED_MEASURE"
    SERVICE = "SERVICE"


class JobStatus(str, Enum):
    """Fine-grained persisted state of a job. Single source of truth for stage."""

    # measure
    MEASURE_APPOINTMENT_PENDING = "MEASURE_APPOINTMENT_PENDING"
    MEASURE_SCHEDULED = "MEASURE_SCHEDULED"
    MEASURE_TAKEN = "MEASURE_TAKEN"
    CUSTOMER_MEASURE_PENDING = "CUSTOMER_MEASURE_PENDING"
    CUSTOMER_MEASURE_UPLOADED = "CUSTOMER_MEASURE_UPLOADED"
    # pricing
    PRICING = "PRICING"
    OFFER_SENT = "OFFER_SENT"
    REJECTED = "REJECTED"
    # agreement
    AGREEMENT_IN_PROGRESS = "AGREEMENT_IN_PROGRESS"
    AGREEMENT_DONE = "AGREEMENT_DONE"
    # stock
    STOCK_PENDING = "STOCK_PENDING"
    # production
    READY_FOR_PRODUCTION = "READY_FOR_PRODUCTION"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRODUCTION_DEFERRED = "PRODUCTION_DEFERRED"
    # assembly
    READY_FOR_ASSEMBLY = "READY_FOR_ASSEMBLY"
    ASSEMBLY_SCHEDULED = "ASSEMBLY_SCHEDULED"
    # finance
    ACCOUNTING_PENDING = "ACCOUNTING_PENDING"
    CLOSED = "CLOSED"
    # service flow
    SERVICE_APPOINTMENT_PENDING = "SERVICE_APPOINTMENT_PENDING"
    SERVICE_SCHEDULED = "SERVICE_SCHEDULED"
    SERVICE_IN_PROGRESS = "SERVICE_IN_PROGRESS"
    SERVICE_ONGOING = "SERVICE_ONGOING"
    SERVICE_PAYMENT_PENDING = "SERVICE_PAYMENT_PENDING"
    SERVICE_CLOSED = "SERVICE_CLOSED"


INITIAL_STATUS: dict[StartType, JobStatus] = {
    StartType.MEASURE_APPOINTMENT: JobStatus.MEASURE_APPOINTMENT_PENDING,
    StartType.CUSTOMER_SUPPLIED_MEASURE: JobStatus.CUSTOMER_MEASURE_PENDING,
    StartType.SERVICE: JobStatus.SERVICE_APPOINTMENT_PENDING,
}


class RejectionCategory(str, Enum):
    """Why the customer declined the offer."""

    PRICE_TOO_HIGH = "PRICE_TOO_HIGH"
    TIMING = "TIMING"
    OTHER_COMPANY = "OTHER_COMPANY"
    PROJECT_CANCELLED = "PROJECT_CANCELLED"
    THINKING = "THINKING"
    OTHER = "OTHER"


class VisitStatus(str, Enum):
    """Service visit progression: scheduled -> in_progress -> completed."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True)
class Role:
    """A work-category attached to a job (partitions pricing and documents)."""

    id: str
    name: str


@dataclass(frozen=True)
class Measure:
    note: str = ""
    appointment: datetime | None = None
    confirmed: bool = False


@dataclass(frozen=True)
class NegotiationRecord:
    """
    One discount round on an offer.

    Contract: immutable once appended; the ledger holding it is append-only.
    """

    negotiated_at: datetime
    original_total: Decimal
    discount_total: Decimal
    final_total: Decimal
    role_discounts: Mapping[str, Decimal]

    def __post_init__(self):
        object.__setattr__(self, "role_discounts", MappingProxyType(dict(self.role_discounts)))


@dataclass(frozen=True)
class Offer:
    """
    The priced proposal for a job, optionally broken down per role.

    Raises:
        ValueError: If role prices are present and do not sum to ``total``.
    """

    total: Decimal = ZERO
    role_prices: Mapping[str, Decimal] = field(default_factory=dict)
    notified_date: date | None = None
    negotiation_history: tuple[NegotiationRecord, ...] = ()
    agreed_date: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "role_prices", MappingProxyType(dict(self.role_prices)))
        # INVARIANT: total mirrors the per-role breakdown when one exists.
        if self.role_prices:
            expected = sum(self.role_prices.values(), ZERO)
            if expected != self.total:
                raise ValueError(
                    f"offer total ({self.total}) must equal the sum of "
                    f"role prices ({expected})"
                )


@dataclass(frozen=True)
class ChequeLine:
    amount: Decimal
    due_date: date | None = None
    bank: str = ""
    branch: str = ""
    number: str = ""


@dataclass(frozen=True)
class PaymentPlan:
    """
    How the customer commits to pay the agreed offer.

    ``declared_cheque_total`` is the cheque aggregate as entered by the
    operator; when present it must agree with the cheque lines.
    """

    cash: Decimal = ZERO
    card: Decimal = ZERO
    cheque_lines: tuple[ChequeLine, ...] = ()
    after_delivery: Decimal = ZERO
    declared_cheque_total: Decimal | None = None


@dataclass(frozen=True)
class Rejection:
    """Present only while the job sits in the rejected terminal."""

    category: RejectionCategory
    reason: str
    rejected_at: datetime
    last_offer: Offer
    follow_up_date: date | None = None


@dataclass(frozen=True)
class Reactivation:
    reactivated_at: datetime
    reactivated_from: Rejection


@dataclass(frozen=True)
class PendingLine:
    """
    Unmet portion of a reservation request (backorder line).

    Raises:
        ValueError: If nothing is actually missing.
    """

    item_id: str
    name: str
    sku: str
    requested_qty: Decimal
    available_at_request: Decimal
    unit: str = ""

    def __post_init__(self):
        if self.missing <= 0:
            raise ValueError(
                f"pending line for {self.item_id} has nothing missing "
                f"(requested {self.requested_qty}, available {self.available_at_request})"
            )

    @property
    def missing(self) -> Decimal:
        return self.requested_qty - self.available_at_request


@dataclass(frozen=True)
class ReservationLine:
    """Outcome of one requested line in a stock reservation."""

    item_id: str
    name: str
    sku: str
    unit: str
    requested_qty: Decimal
    available: Decimal
    ready: bool

    @property
    def missing(self) -> Decimal:
        return max(ZERO, self.requested_qty - self.available)


@dataclass(frozen=True)
class StockRecord:
    consumed: bool
    note: str
    lines: tuple[ReservationLine, ...]
    reserved_at: datetime
    purchase_order_id: str | None = None


@dataclass(frozen=True)
class ProductionRecord:
    status: JobStatus
    updated_at: datetime
    deferred_until: date | None = None


@dataclass(frozen=True)
class AssemblyRecord:
    scheduled_for: datetime | None = None
    team: str = ""
    note: str = ""
    completed_at: datetime | None = None


@dataclass(frozen=True)
class Discount:
    amount: Decimal
    note: str = ""


@dataclass(frozen=True)
class ServiceVisit:
    """One scheduled/executed maintenance call within a service job."""

    id: int
    appointment_date: date
    appointment_time: str
    status: VisitStatus = VisitStatus.SCHEDULED
    visited_at: datetime | None = None
    note: str = ""
    work_note: str = ""
    materials: str = ""
    extra_cost: Decimal = ZERO
    completed_at: datetime | None = None

    def __post_init__(self):
        if self.id < 1:
            raise ValueError(f"visit id must be positive (got {self.id})")
        if self.extra_cost < 0:
            raise ValueError(f"extra_cost cannot be negative (got {self.extra_cost})")


@dataclass(frozen=True)
class ServicePayments:
    cash: Decimal = ZERO
    card: Decimal = ZERO
    transfer: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.cash + self.card + self.transfer


@dataclass(frozen=True)
class ServiceDetails:
    fixed_fee: Decimal = ZERO
    note: str = ""
    visits: tuple[ServiceVisit, ...] = ()
    total_extra_cost: Decimal = ZERO
    total_cost: Decimal = ZERO
    payments: ServicePayments | None = None
    discount: Discount | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    completed_at: datetime | None = None


@dataclass(frozen=True)
class FinancePayments:
    cash: Decimal = ZERO
    card: Decimal = ZERO
    cheque: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.cash + self.card + self.cheque


@dataclass(frozen=True)
class FinanceRecord:
    total: Decimal
    payments: FinancePayments
    closed_at: datetime
    discount: Discount | None = None


@dataclass(frozen=True)
class Job:
    """
    A custom window/door order or a maintenance service call.

    Contract: immutable snapshot.  ``status`` is the single source of truth
    for the stage; ``start_type`` selects the flow.
    """

    id: str
    status: JobStatus
    start_type: StartType
    customer_id: str
    roles: tuple[Role, ...] = ()
    measure: Measure = field(default_factory=Measure)
    offer: Offer = field(default_factory=Offer)
    payment_plan: PaymentPlan | None = None
    rejection: Rejection | None = None
    reactivation: Reactivation | None = None
    pending_purchase_lines: tuple[PendingLine, ...] = ()
    stock: StockRecord | None = None
    production: ProductionRecord | None = None
    assembly: AssemblyRecord | None = None
    service: ServiceDetails | None = None
    finance: FinanceRecord | None = None
    created_at: datetime | None = None

    @classmethod
    def create(
        cls,
        job_id: str,
        start_type: StartType,
        customer_id: str,
        roles: tuple[Role, ...] = (),
        created_at: datetime | None = None,
        **fields: Any,
    ) -> Job:
        """Create a job in the first status of its flow."""
        if start_type == StartType.SERVICE and "service" not in fields:
            fields["service"] = ServiceDetails()
        return cls(
            id=job_id,
            status=INITIAL_STATUS[start_type],
            start_type=start_type,
            customer_id=customer_id,
            roles=tuple(roles),
            created_at=created_at,
            **fields,
        )

    @property
    def is_service(self) -> bool:
        return self.start_type == StartType.SERVICE

    @property
    def role_ids(self) -> frozenset[str]:
        return frozenset(role.id for role in self.roles)

    def transitioned(self, status: JobStatus, **changes: Any) -> Job:
        """Return a new snapshot in ``status`` with ``changes`` applied."""
        return replace(self, status=status, **changes)
