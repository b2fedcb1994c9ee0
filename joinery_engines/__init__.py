"""
Module: joinery_engines
Responsibility:
    Package entrypoint re-exporting the pure lifecycle engines.  This is
    the canonical import surface for ``joinery_services``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import joinery_kernel (domain, exceptions, logging).
    MUST NOT import joinery_services or joinery_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      ``now`` / ``today`` are explicit parameters supplied by services.
    - Decimal-only arithmetic for amounts and quantities.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from joinery_engines import classify, check_transition, reserve_stock
"""

from joinery_engines.job_updates import (
    close_finance,
    complete_agreement,
    complete_assembly,
    confirm_measure,
    record_customer_measure,
    schedule_assembly,
    schedule_measure,
    start_pricing,
    update_production,
)
from joinery_engines.negotiation import (
    NegotiationResult,
    accept_offer,
    build_offer,
    negotiate,
    submit_offer,
)
from joinery_engines.payments import (
    DEFAULT_POLICY,
    AgreementReconciliation,
    FinanceSettlement,
    ReconciliationPolicy,
    ServiceSettlement,
    average_cheque_days,
    cheque_total,
    plan_total,
    pre_received,
    reconcile_agreement,
    service_totals,
    settle_finance,
    settle_service,
)
from joinery_engines.rejection import reactivate, reject_offer
from joinery_engines.reservation import (
    ReleaseResult,
    ReservationResult,
    purchase_note,
    release_reservation,
    reserve_stock,
)
from joinery_engines.service_visits import (
    VisitOutcome,
    close_service,
    complete_visit,
    next_visit_id,
    schedule_follow_up,
    schedule_service,
    start_visit,
)
from joinery_engines.stage_flow import (
    StageState,
    ViewCursor,
    classify,
    classify_job,
    next_stage,
    stage_index,
    stage_state,
    stage_states,
)
from joinery_engines.tracer import traced_engine
from joinery_engines.transition_validator import (
    TransitionRequest,
    check_transition,
    resolve_transition,
    validate_transition,
)

__all__ = [
    # stage flow
    "StageState",
    "ViewCursor",
    "classify",
    "classify_job",
    "next_stage",
    "stage_index",
    "stage_state",
    "stage_states",
    # validation
    "TransitionRequest",
    "check_transition",
    "resolve_transition",
    "validate_transition",
    # payments
    "DEFAULT_POLICY",
    "AgreementReconciliation",
    "FinanceSettlement",
    "ReconciliationPolicy",
    "ServiceSettlement",
    "average_cheque_days",
    "cheque_total",
    "plan_total",
    "pre_received",
    "reconcile_agreement",
    "service_totals",
    "settle_finance",
    "settle_service",
    # reservation
    "ReleaseResult",
    "ReservationResult",
    "purchase_note",
    "release_reservation",
    "reserve_stock",
    # negotiation
    "NegotiationResult",
    "accept_offer",
    "build_offer",
    "negotiate",
    "submit_offer",
    # service visits
    "VisitOutcome",
    "close_service",
    "complete_visit",
    "next_visit_id",
    "schedule_follow_up",
    "schedule_service",
    "start_visit",
    # rejection
    "reactivate",
    "reject_offer",
    # job updates
    "close_finance",
    "complete_agreement",
    "complete_assembly",
    "confirm_measure",
    "record_customer_measure",
    "schedule_assembly",
    "schedule_measure",
    "start_pricing",
    "update_production",
    # tracing
    "traced_engine",
]
