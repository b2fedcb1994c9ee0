"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from joinery_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from joinery_kernel.domain.documents import (
    CONTRACT,
    SERVICE_AFTER,
    SERVICE_BEFORE,
    DocumentRef,
    document_types,
    measurement_drawing_type,
    technical_drawing_type,
)
from joinery_kernel.domain.dtos import (
    ActivityEntry,
    TransitionOutcome,
    ValidationIssue,
    ValidationResult,
)
from joinery_kernel.domain.flows import (
    REACTIVATION_STATUS,
    REJECTED_STATUS,
    SERVICE_FLOW,
    STANDARD_FLOW,
    flow_for,
)
from joinery_kernel.domain.job import (
    AssemblyRecord,
    ChequeLine,
    Discount,
    FinancePayments,
    FinanceRecord,
    Job,
    JobStatus,
    Measure,
    NegotiationRecord,
    Offer,
    PaymentPlan,
    PaymentStatus,
    PendingLine,
    ProductionRecord,
    Reactivation,
    Rejection,
    RejectionCategory,
    ReservationLine,
    Role,
    ServiceDetails,
    ServicePayments,
    ServiceVisit,
    StartType,
    StockRecord,
    VisitStatus,
)
from joinery_kernel.domain.stock import (
    PurchaseOrder,
    ReservationRequest,
    StockItem,
    StockMutation,
)
from joinery_kernel.domain.workflow import Guard, Stage, StageFlow, Transition

__all__ = [
    "ActivityEntry",
    "AssemblyRecord",
    "CONTRACT",
    "ChequeLine",
    "Clock",
    "DeterministicClock",
    "Discount",
    "DocumentRef",
    "FinancePayments",
    "FinanceRecord",
    "Guard",
    "Job",
    "JobStatus",
    "Measure",
    "NegotiationRecord",
    "Offer",
    "PaymentPlan",
    "PaymentStatus",
    "PendingLine",
    "ProductionRecord",
    "PurchaseOrder",
    "REACTIVATION_STATUS",
    "REJECTED_STATUS",
    "Reactivation",
    "Rejection",
    "RejectionCategory",
    "ReservationLine",
    "ReservationRequest",
    "Role",
    "SERVICE_AFTER",
    "SERVICE_BEFORE",
    "SERVICE_FLOW",
    "STANDARD_FLOW",
    "ServiceDetails",
    "ServicePayments",
    "ServiceVisit",
    "Stage",
    "StageFlow",
    "StartType",
    "StockItem",
    "StockMutation",
    "StockRecord",
    "SystemClock",
    "Transition",
    "TransitionOutcome",
    "ValidationIssue",
    "ValidationResult",
    "VisitStatus",
    "document_types",
    "flow_for",
    "measurement_drawing_type",
    "technical_drawing_type",
]
