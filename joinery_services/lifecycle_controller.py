"""
joinery_services.lifecycle_controller -- Job lifecycle orchestration.

Responsibility:
    The single entry point callers use to move a job through its flow.
    For every request: fetch the current snapshot, gate the transition
    with the validator, build the next snapshot with the matching pure
    engine, persist it through the job store, then append the audit entry
    through the best-effort activity logger.

Architecture position:
    Services layer.  May import from joinery_engines (pure engines),
    joinery_kernel (domain, exceptions, logging, clock) and
    joinery_config.  Thin coordinator: no reconciliation arithmetic here.

Invariants enforced:
    - Validate first: no store is called when validation fails.
    - At most one in-flight transition per job id; a concurrent second
      request raises ``TransitionInFlightError`` immediately.
    - Store failures surface as ``RemoteError`` with the raw message; the
      caller keeps its last confirmed snapshot and nothing is retried.
    - Activity log failures never fail or roll back a transition.
    - A stock reservation whose job write fails is released again, so the
      stock store holds nothing for a job that stayed where it was.

Failure modes:
    - ValidationError -- every violated rule, with the discrepancy.
    - RemoteError -- job/stock/document store rejected a call.
    - TransitionInFlightError -- same job already being transitioned.
    - UnmappedStatusError -- the stored status is foreign to the job's flow.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from joinery_config import LifecycleConfig, get_active_config
from joinery_engines import (
    ReconciliationPolicy,
    ReservationResult,
    TransitionRequest,
    VisitOutcome,
    check_transition,
    reconcile_agreement,
    settle_finance,
    settle_service,
)
from joinery_engines import job_updates, negotiation, rejection, service_visits
from joinery_engines.reservation import release_reservation
from joinery_engines.reservation import reserve_stock as plan_reservation
from joinery_kernel.db.base import new_id
from joinery_kernel.domain.clock import Clock, SystemClock
from joinery_kernel.domain.documents import DocumentRef
from joinery_kernel.domain.dtos import (
    ActivityEntry,
    TransitionOutcome,
    ValidationIssue,
)
from joinery_kernel.domain.flows import flow_for
from joinery_kernel.domain.job import (
    Discount,
    FinancePayments,
    Job,
    JobStatus,
    PaymentPlan,
    RejectionCategory,
    Role,
    ServicePayments,
    StartType,
)
from joinery_kernel.domain.stock import ReservationRequest, StockItem
from joinery_kernel.exceptions import RemoteError, TransitionInFlightError
from joinery_kernel.logging_config import LogContext, get_logger
from joinery_services.activity_log import ActivityLogger, build_entry
from joinery_services.stores import DocumentStore, JobStore, LogStore, StockStore

logger = get_logger("services.lifecycle_controller")


def policy_from_config(config: LifecycleConfig) -> ReconciliationPolicy:
    return ReconciliationPolicy(
        tolerance=config.amount_tolerance,
        long_cheque_term_days=config.long_cheque_term_days,
        require_service_discount_note=config.require_service_discount_note,
        require_finance_discount_note=config.require_finance_discount_note,
    )


@dataclass(frozen=True)
class _Change:
    """Next snapshot built by an engine, plus what goes into the audit entry."""

    job: Job
    detail: str
    meta: dict[str, Any] = field(default_factory=dict)
    payload: Any = None
    warnings: tuple[ValidationIssue, ...] = ()


class JobLifecycleController:
    """
    Coordinates validated, persisted, audited job transitions.

    Contract:
        Every public transition method returns a ``TransitionOutcome``
        holding the snapshot the job store returned.  The caller's own
        ``Job`` objects are never mutated.
    """

    def __init__(
        self,
        jobs: JobStore,
        *,
        stock: StockStore | None = None,
        documents: DocumentStore | None = None,
        logs: LogStore | None = None,
        clock: Clock | None = None,
        config: LifecycleConfig | None = None,
        id_factory: Callable[[], str] = new_id,
    ):
        self._jobs = jobs
        self._stock = stock
        self._documents = documents
        self._activity = ActivityLogger(logs)
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._policy = policy_from_config(self._config)
        self._new_id = id_factory
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    @property
    def config(self) -> LifecycleConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, job_id: str) -> Iterator[None]:
        with self._lock:
            if job_id in self._in_flight:
                logger.warning("transition_in_flight", extra={"job_id": job_id})
                raise TransitionInFlightError(job_id)
            self._in_flight.add(job_id)
        try:
            with LogContext.bind(job_id=job_id):
                yield
        finally:
            with self._lock:
                self._in_flight.discard(job_id)

    def _remote(self, operation: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except RemoteError:
            raise
        except Exception as exc:
            logger.error(
                "remote_call_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise RemoteError(operation, str(exc)) from exc

    def _fetch(self, job_id: str) -> Job:
        return self._remote("get_job", lambda: self._jobs.get_job(job_id))

    def _job_documents(self, job_id: str) -> tuple[DocumentRef, ...]:
        if self._documents is None:
            return ()
        return tuple(self._remote(
            "get_job_documents", lambda: self._documents.get_job_documents(job_id)
        ))

    def _gate(self, job: Job, request: TransitionRequest) -> tuple[ValidationIssue, ...]:
        result = check_transition(job, request=request, policy=self._policy)
        if not result.is_valid:
            logger.info(
                "transition_refused",
                extra={
                    "job_id": job.id,
                    "action": request.action,
                    "from_status": job.status.value,
                    "to_status": JobStatus(request.target).value,
                    "codes": [issue.code for issue in result.errors],
                    "discrepancy": result.discrepancy,
                },
            )
            result.raise_if_invalid(JobStatus(request.target).value)
        return result.warnings

    def _commit(
        self,
        job: Job,
        *,
        action: str,
        store_op: str,
        change: _Change,
        warnings: tuple[ValidationIssue, ...] = (),
    ) -> TransitionOutcome:
        store_call = getattr(self._jobs, store_op)
        stored = self._remote(store_op, lambda: store_call(job.id, change.job))

        flow = flow_for(job.start_type)
        transition = flow.find_transition(job.status, change.job.status, action)
        advance = not (transition is not None and transition.intermediate)
        all_warnings = tuple(warnings) + tuple(change.warnings)

        meta = {
            "from_status": job.status.value,
            "to_status": stored.status.value,
            **change.meta,
        }
        if all_warnings:
            meta["warnings"] = [w.code for w in all_warnings]
        entry = build_entry(job.id, action, change.detail, self._clock.now(), meta)
        self._activity.record(entry)

        logger.info(
            "transition_accepted",
            extra={
                "job_id": job.id,
                "action": action,
                "from_status": job.status.value,
                "to_status": stored.status.value,
                "advance_view": advance,
            },
        )
        return TransitionOutcome(
            job=stored,
            previous_status=job.status,
            entry=entry,
            advance_view=advance,
            warnings=all_warnings,
            payload=change.payload,
        )

    def _transition(
        self,
        job_id: str,
        *,
        action: str,
        target: JobStatus,
        store_op: str,
        build: Callable[[Job], _Change],
        with_documents: bool = False,
        **request_fields: Any,
    ) -> TransitionOutcome:
        with self._exclusive(job_id):
            job = self._fetch(job_id)
            documents = self._job_documents(job_id) if with_documents else ()
            request = TransitionRequest(
                target=target,
                action=action,
                documents=documents,
                today=self._clock.today(),
                **request_fields,
            )
            warnings = self._gate(job, request)
            change = build(job)
            return self._commit(
                job, action=action, store_op=store_op, change=change, warnings=warnings
            )

    # -------------------------------------------------------------------------
    # Reads / creation
    # -------------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job:
        return self._fetch(job_id)

    def history(self, job_id: str) -> list[ActivityEntry]:
        return self._remote("get_job_logs", lambda: self._activity.history(job_id))

    def create_job(
        self,
        *,
        start_type: StartType,
        customer_id: str,
        roles: Iterable[Role] = (),
        job_id: str | None = None,
    ) -> Job:
        """Create a job in the first status of its flow."""
        job = Job.create(
            job_id or self._new_id(),
            StartType(start_type),
            customer_id,
            roles=tuple(roles),
            created_at=self._clock.now(),
        )
        stored = self._remote("create_job", lambda: self._jobs.create_job(job))
        self._activity.record(build_entry(
            stored.id,
            "job_created",
            f"job created ({stored.start_type.value})",
            self._clock.now(),
            {"status": stored.status.value, "customer_id": customer_id},
        ))
        logger.info(
            "job_created",
            extra={
                "job_id": stored.id,
                "start_type": stored.start_type.value,
                "status": stored.status.value,
            },
        )
        return stored

    # -------------------------------------------------------------------------
    # Measurement
    # -------------------------------------------------------------------------

    def schedule_measure(
        self, job_id: str, *, appointment: datetime | None, note: str = ""
    ) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="schedule_measure",
            target=JobStatus.MEASURE_SCHEDULED,
            store_op="update_job_measure",
            build=lambda job: _Change(
                job_updates.schedule_measure(job, appointment=appointment, note=note),
                "measurement appointment scheduled",
                {"appointment": appointment},
            ),
        )

    def confirm_measure(self, job_id: str, *, note: str = "") -> TransitionOutcome:
        return self._transition(
            job_id,
            action="confirm_measure",
            target=JobStatus.MEASURE_TAKEN,
            store_op="update_job_measure",
            build=lambda job: _Change(
                job_updates.confirm_measure(job, note=note),
                "measurement taken",
            ),
        )

    def record_customer_measure(self, job_id: str, *, note: str = "") -> TransitionOutcome:
        return self._transition(
            job_id,
            action="record_customer_measure",
            target=JobStatus.CUSTOMER_MEASURE_UPLOADED,
            store_op="update_job_measure",
            build=lambda job: _Change(
                job_updates.record_customer_measure(job, note=note),
                "customer measurements uploaded",
            ),
        )

    def start_pricing(self, job_id: str) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="start_pricing",
            target=JobStatus.PRICING,
            store_op="update_job_status",
            with_documents=True,
            build=lambda job: _Change(job_updates.start_pricing(job), "moved to pricing"),
        )

    # -------------------------------------------------------------------------
    # Offer decision
    # -------------------------------------------------------------------------

    def submit_offer(
        self,
        job_id: str,
        *,
        role_prices: Mapping[str, Decimal] | None = None,
        total: Decimal | None = None,
        notified_date: date | None = None,
    ) -> TransitionOutcome:
        def offer_for(job: Job):
            return negotiation.build_offer(
                role_ids=[role.id for role in job.roles],
                role_prices=role_prices,
                total=total,
                notified_date=notified_date,
            )

        with self._exclusive(job_id):
            job = self._fetch(job_id)
            offer = offer_for(job)
            warnings = self._gate(job, TransitionRequest(
                target=JobStatus.OFFER_SENT,
                action="submit_offer",
                offer=offer,
                today=self._clock.today(),
            ))
            updated = negotiation.submit_offer(job, offer, today=self._clock.today())
            return self._commit(
                job,
                action="submit_offer",
                store_op="update_job_status",
                warnings=warnings,
                change=_Change(
                    updated,
                    f"offer sent: {updated.offer.total}",
                    {"total": updated.offer.total, "role_prices": dict(updated.offer.role_prices)},
                ),
            )

    def accept_offer(self, job_id: str) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="accept_offer",
            target=JobStatus.AGREEMENT_IN_PROGRESS,
            store_op="update_job_status",
            build=lambda job: _Change(
                negotiation.accept_offer(job, now=self._clock.now()),
                "offer accepted",
                {"total": job.offer.total},
            ),
        )

    def negotiate_offer(
        self, job_id: str, *, role_discounts: Mapping[str, Decimal]
    ) -> TransitionOutcome:
        def build(job: Job) -> _Change:
            result = negotiation.negotiate(
                job, role_discounts=role_discounts, now=self._clock.now()
            )
            record = result.record
            return _Change(
                result.job,
                f"offer negotiated: {record.original_total} -> {record.final_total}",
                {
                    "original_total": record.original_total,
                    "discount_total": record.discount_total,
                    "final_total": record.final_total,
                    "role_discounts": dict(record.role_discounts),
                },
                payload=record,
                warnings=result.warnings,
            )

        return self._transition(
            job_id,
            action="negotiate_offer",
            target=JobStatus.AGREEMENT_IN_PROGRESS,
            store_op="update_job_status",
            build=build,
        )

    def reject_offer(
        self,
        job_id: str,
        *,
        category: RejectionCategory | None,
        reason: str,
        follow_up_date: date | None = None,
    ) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="reject_offer",
            target=JobStatus.REJECTED,
            store_op="update_job_status",
            rejection_category=category,
            rejection_reason=reason or "",
            build=lambda job: _Change(
                rejection.reject_offer(
                    job,
                    category=category,
                    reason=reason,
                    now=self._clock.now(),
                    follow_up_date=follow_up_date,
                ),
                f"offer rejected: {reason}",
                {"category": category, "follow_up_date": follow_up_date},
            ),
        )

    def reactivate(self, job_id: str) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="reactivate",
            target=JobStatus.OFFER_SENT,
            store_op="update_job_status",
            build=lambda job: _Change(
                rejection.reactivate(job, now=self._clock.now()),
                "job reactivated with last offer",
                {"total": job.rejection.last_offer.total if job.rejection else None},
            ),
        )

    # -------------------------------------------------------------------------
    # Agreement
    # -------------------------------------------------------------------------

    def complete_agreement(self, job_id: str, *, plan: PaymentPlan) -> TransitionOutcome:
        def build(job: Job) -> _Change:
            summary = reconcile_agreement(
                offer_total=job.offer.total,
                plan=plan,
                today=self._clock.today(),
                policy=self._policy,
            )
            return _Change(
                job_updates.complete_agreement(job, plan=plan),
                f"agreement completed: {summary.plan_total}",
                {
                    "plan_total": summary.plan_total,
                    "cheque_total": summary.cheque_total,
                    "average_cheque_days": summary.average_cheque_days,
                    "currency": self._config.currency,
                },
                payload=summary,
            )

        return self._transition(
            job_id,
            action="complete_agreement",
            target=JobStatus.AGREEMENT_DONE,
            store_op="start_job_approval",
            payment_plan=plan,
            build=build,
        )

    # -------------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------------

    def reserve_stock(
        self,
        job_id: str,
        *,
        requests: Iterable[ReservationRequest],
        consume_now: bool = False,
        note: str = "",
    ) -> TransitionOutcome:
        """Reserve stock lines; short lines become backorders on a purchase order.

        The stock store runs the reservation plan under its per-item lock,
        so availability is read and written atomically per item.
        """
        if self._stock is None:
            raise RemoteError("apply_reservation", "no stock store configured")
        requests = tuple(requests)
        item_ids = list(dict.fromkeys(r.item_id for r in requests))

        with self._exclusive(job_id):
            job = self._fetch(job_id)
            # Both targets share the same table entries and no guard.
            self._gate(job, TransitionRequest(
                target=JobStatus.STOCK_PENDING, action="reserve_stock"
            ))
            now = self._clock.now()
            purchase_order_id = self._new_id()

            def plan(items: dict[str, StockItem]) -> ReservationResult:
                return plan_reservation(
                    job,
                    items=items,
                    requests=requests,
                    consume_now=consume_now,
                    now=now,
                    purchase_order_id=purchase_order_id,
                    note=note,
                )

            result: ReservationResult = self._remote(
                "apply_reservation",
                lambda: self._stock.apply_reservation(item_ids, plan),
            )
            meta: dict[str, Any] = {
                "consumed": consume_now,
                "lines": [
                    {"item_id": line.item_id, "qty": line.requested_qty, "ready": line.ready}
                    for line in result.lines
                ],
            }
            if result.purchase_order is not None:
                meta["purchase_order_id"] = result.purchase_order.id
                meta["total_missing"] = result.purchase_order.total_missing
                meta["pending"] = [
                    {"item_id": p.item_id, "missing": p.missing} for p in result.pending
                ]
            detail = (
                "stock reserved"
                if result.all_ready
                else f"stock pending: {len(result.pending)} line(s) on order"
            )
            try:
                return self._commit(
                    job,
                    action="reserve_stock",
                    store_op="update_stock_status",
                    change=_Change(result.job, detail, meta, payload=result),
                )
            except RemoteError:
                self._release_stock(job.id, item_ids, result)
                raise

    def _release_stock(
        self, job_id: str, item_ids: list[str], result: ReservationResult
    ) -> None:
        """Reverse a reservation whose job write failed.

        The original RemoteError is what the caller sees; a failed release
        is logged for manual correction.
        """
        try:
            self._stock.apply_reservation(
                item_ids, lambda items: release_reservation(items, result.mutations)
            )
        except Exception as exc:
            logger.error(
                "stock_release_failed",
                extra={"job_id": job_id, "item_ids": item_ids, "error": str(exc)},
            )
            return
        logger.warning(
            "stock_reservation_released",
            extra={"job_id": job_id, "item_ids": item_ids},
        )

    # -------------------------------------------------------------------------
    # Production / assembly
    # -------------------------------------------------------------------------

    def update_production(
        self,
        job_id: str,
        *,
        status: JobStatus,
        deferred_until: date | None = None,
    ) -> TransitionOutcome:
        status = JobStatus(status)
        return self._transition(
            job_id,
            action="update_production",
            target=status,
            store_op="update_production_status",
            build=lambda job: _Change(
                job_updates.update_production(
                    job, status=status, now=self._clock.now(), deferred_until=deferred_until
                ),
                f"production status: {status.value}",
                {"deferred_until": deferred_until},
            ),
        )

    def schedule_assembly(
        self,
        job_id: str,
        *,
        scheduled_for: datetime | None,
        team: str = "",
        note: str = "",
    ) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="schedule_assembly",
            target=JobStatus.ASSEMBLY_SCHEDULED,
            store_op="schedule_assembly",
            build=lambda job: _Change(
                job_updates.schedule_assembly(
                    job, scheduled_for=scheduled_for, team=team, note=note
                ),
                "assembly scheduled",
                {"scheduled_for": scheduled_for, "team": team},
            ),
        )

    def complete_assembly(self, job_id: str, *, note: str = "") -> TransitionOutcome:
        return self._transition(
            job_id,
            action="complete_assembly",
            target=JobStatus.ACCOUNTING_PENDING,
            store_op="complete_assembly",
            build=lambda job: _Change(
                job_updates.complete_assembly(job, now=self._clock.now(), note=note),
                "assembly completed",
            ),
        )

    # -------------------------------------------------------------------------
    # Finance
    # -------------------------------------------------------------------------

    def close_finance(
        self,
        job_id: str,
        *,
        payments: FinancePayments,
        discount: Discount | None = None,
    ) -> TransitionOutcome:
        def build(job: Job) -> _Change:
            settlement = settle_finance(
                offer_total=job.offer.total,
                plan=job.payment_plan,
                payments=payments,
                discount=discount,
                policy=self._policy,
            )
            return _Change(
                job_updates.close_finance(
                    job, payments=payments, now=self._clock.now(), discount=discount
                ),
                "financial closure completed",
                {
                    "pre_received": settlement.pre_received,
                    "now_received": settlement.now_received,
                    "discount": settlement.discount,
                    "balance": settlement.balance,
                    "currency": self._config.currency,
                },
                payload=settlement,
            )

        return self._transition(
            job_id,
            action="close_finance",
            target=JobStatus.CLOSED,
            store_op="close_finance",
            finance_payments=payments,
            discount=discount,
            build=build,
        )

    # -------------------------------------------------------------------------
    # Service flow
    # -------------------------------------------------------------------------

    def schedule_service(
        self,
        job_id: str,
        *,
        appointment_date: date | None,
        fixed_fee: Decimal,
        appointment_time: str | None = None,
        note: str = "",
    ) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="schedule_service",
            target=JobStatus.SERVICE_SCHEDULED,
            store_op="update_job_status",
            build=lambda job: _Change(
                service_visits.schedule_service(
                    job,
                    appointment_date=appointment_date,
                    fixed_fee=fixed_fee,
                    appointment_time=appointment_time,
                    note=note,
                    default_time=self._config.default_visit_time,
                ),
                "service appointment scheduled",
                {"appointment_date": appointment_date, "fixed_fee": fixed_fee},
            ),
        )

    def start_visit(self, job_id: str, *, visited_at: datetime | None = None) -> TransitionOutcome:
        return self._transition(
            job_id,
            action="start_visit",
            target=JobStatus.SERVICE_IN_PROGRESS,
            store_op="update_job_status",
            build=lambda job: _Change(
                service_visits.start_visit(job, visited_at=visited_at or self._clock.now()),
                "service visit started",
            ),
        )

    def complete_visit(
        self,
        job_id: str,
        *,
        work_note: str,
        outcome: VisitOutcome,
        materials: str = "",
        extra_cost: Decimal = Decimal("0"),
    ) -> TransitionOutcome:
        outcome = VisitOutcome(outcome)
        finalize = outcome == VisitOutcome.FINALIZE

        def build(job: Job) -> _Change:
            updated = service_visits.complete_visit(
                job,
                work_note=work_note,
                now=self._clock.now(),
                outcome=outcome,
                materials=materials,
                extra_cost=extra_cost,
            )
            meta: dict[str, Any] = {"extra_cost": extra_cost, "outcome": outcome.value}
            if finalize and updated.service is not None:
                meta["total_cost"] = updated.service.total_cost
            return _Change(
                updated,
                "service visit completed" + ("" if finalize else ", follow-up needed"),
                meta,
            )

        return self._transition(
            job_id,
            action="finalize_service" if finalize else "continue_service",
            target=JobStatus.SERVICE_PAYMENT_PENDING if finalize else JobStatus.SERVICE_ONGOING,
            store_op="update_job_status",
            build=build,
        )

    def schedule_follow_up(
        self,
        job_id: str,
        *,
        appointment_date: date | None,
        appointment_time: str | None = None,
        note: str = "",
        visited_at: datetime | None = None,
    ) -> TransitionOutcome:
        target = JobStatus.SERVICE_IN_PROGRESS if visited_at else JobStatus.SERVICE_SCHEDULED

        def build(job: Job) -> _Change:
            updated = service_visits.schedule_follow_up(
                job,
                appointment_date=appointment_date,
                appointment_time=appointment_time,
                note=note,
                visited_at=visited_at,
                default_time=self._config.default_visit_time,
            )
            return _Change(
                updated,
                f"follow-up visit #{updated.service.visits[-1].id} scheduled",
                {"visit_id": updated.service.visits[-1].id, "appointment_date": appointment_date},
            )

        return self._transition(
            job_id,
            action="schedule_follow_up",
            target=target,
            store_op="update_job_status",
            build=build,
        )

    def close_service(
        self,
        job_id: str,
        *,
        payments: ServicePayments,
        discount: Discount | None = None,
    ) -> TransitionOutcome:
        def build(job: Job) -> _Change:
            settlement = settle_service(
                total_cost=job.service.total_cost,
                payments=payments,
                discount=discount,
                policy=self._policy,
            )
            return _Change(
                service_visits.close_service(
                    job, payments=payments, now=self._clock.now(), discount=discount
                ),
                "service closed",
                {
                    "total_cost": settlement.total_cost,
                    "paid": settlement.paid,
                    "discount": settlement.discount,
                    "currency": self._config.currency,
                },
                payload=settlement,
            )

        return self._transition(
            job_id,
            action="close_service",
            target=JobStatus.SERVICE_CLOSED,
            store_op="update_job_status",
            service_payments=payments,
            discount=discount,
            build=build,
        )
