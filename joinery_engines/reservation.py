"""
joinery_engines.reservation -- Stock reservation and backorder synthesis.

Responsibility:
    Given a point-in-time stock snapshot and a job's requested lines,
    compute which lines are ready, which are short, the per-item quantity
    deltas, the job's new backorder list and, when anything is short, the
    purchase-order record grouping the pending lines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The stock store applies
    the returned items under a per-item row lock
    (see ``joinery_services.sql_stock_store``).

Invariants enforced:
    - ``available = max(0, on_hand - reserved)`` is re-derived from the
      working snapshot before every line; it is never cached.
    - Ready line: consume-now decrements on_hand, otherwise reserved grows
      by the requested quantity.
    - Short line: reserved grows by the available portion only and a
      PendingLine with ``missing = quantity - available`` is recorded.
    - Pending lines of re-requested items are replaced; pending lines of
      items not in this request are kept.  The quantity a replaced line
      still held is released before the item is reserved again.
    - ``release_reservation`` reverses a plan's mutations when the job
      write that should follow it fails.

Failure modes:
    - StockItemNotFoundError if a request names an item absent from the
      snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from joinery_kernel.domain.job import (
    ZERO,
    Job,
    JobStatus,
    PendingLine,
    ReservationLine,
    StockRecord,
)
from joinery_kernel.domain.stock import (
    PurchaseOrder,
    ReservationRequest,
    StockItem,
    StockMutation,
)
from joinery_kernel.exceptions import StockItemNotFoundError
from joinery_kernel.logging_config import get_logger
from joinery_engines.tracer import traced_engine

logger = get_logger("engines.reservation")


@dataclass(frozen=True)
class ReservationResult:
    """Everything one reservation attempt produces."""

    job: Job
    items: tuple[StockItem, ...]
    lines: tuple[ReservationLine, ...]
    pending: tuple[PendingLine, ...]
    mutations: tuple[StockMutation, ...]
    purchase_order: PurchaseOrder | None
    note: str

    @property
    def target_status(self) -> JobStatus:
        return self.job.status

    @property
    def all_ready(self) -> bool:
        return not self.pending


def merge_requests(requests: Iterable[ReservationRequest]) -> tuple[ReservationRequest, ...]:
    """Sum quantities of repeated items, keeping first-seen order."""
    totals: dict[str, Decimal] = {}
    for request in requests:
        totals[request.item_id] = totals.get(request.item_id, ZERO) + request.quantity
    return tuple(ReservationRequest(item_id, qty) for item_id, qty in totals.items())


def format_quantity(quantity: Decimal) -> str:
    """Render 5.000 as 5 and 2.50 as 2.5."""
    return format(quantity.normalize(), "f")


def purchase_note(lines: Iterable[ReservationLine]) -> str:
    """Default note: ``name (sku) - qty unit (available N)`` joined by `` | ``."""
    parts = []
    for line in lines:
        qty = format_quantity(line.requested_qty)
        if line.unit:
            qty = f"{qty} {line.unit}"
        parts.append(
            f"{line.name} ({line.sku}) - {qty} "
            f"(available {format_quantity(line.available)})"
        )
    return " | ".join(parts)


@traced_engine(
    "reservation", "1.0",
    fingerprint_fields=("requests", "consume_now", "purchase_order_id"),
)
def reserve_stock(
    job: Job,
    *,
    items: Mapping[str, StockItem] | Iterable[StockItem],
    requests: Iterable[ReservationRequest],
    consume_now: bool,
    now: datetime,
    purchase_order_id: str,
    note: str = "",
) -> ReservationResult:
    """Reserve the requested lines against ``items``.

    ``purchase_order_id`` is used only when at least one line is short.
    The returned job is in READY_FOR_PRODUCTION when nothing is pending,
    STOCK_PENDING otherwise.
    """
    if not isinstance(items, Mapping):
        items = {item.id: item for item in items}
    working: dict[str, StockItem] = dict(items)

    lines: list[ReservationLine] = []
    new_pending: list[PendingLine] = []
    mutations: list[StockMutation] = []
    requested = merge_requests(requests)
    prior_pending = {p.item_id: p for p in job.pending_purchase_lines}

    for request in requested:
        item = working.get(request.item_id)
        if item is None:
            raise StockItemNotFoundError(request.item_id)

        # A short line from an earlier attempt still holds its available
        # portion; release it so the job never holds more than it asks for.
        held = ZERO
        if request.item_id in prior_pending:
            held = min(prior_pending[request.item_id].available_at_request, item.reserved)
            item = replace(item, reserved=item.reserved - held)

        available = item.available
        ready = request.quantity <= available
        if ready and consume_now:
            mutation = StockMutation(item.id, on_hand_delta=-request.quantity)
        elif ready:
            mutation = StockMutation(item.id, reserved_delta=request.quantity)
        else:
            mutation = StockMutation(item.id, reserved_delta=available)
            new_pending.append(PendingLine(
                item_id=item.id,
                name=item.name,
                sku=item.sku,
                requested_qty=request.quantity,
                available_at_request=available,
                unit=item.unit,
            ))
            logger.info(
                "stock_line_pending",
                extra={
                    "job_id": job.id,
                    "item_id": item.id,
                    "requested_qty": str(request.quantity),
                    "available": str(available),
                },
            )

        working[item.id] = replace(
            item,
            on_hand=item.on_hand + mutation.on_hand_delta,
            reserved=item.reserved + mutation.reserved_delta,
        )
        if working[item.id].is_critical:
            logger.info(
                "stock_item_critical",
                extra={
                    "item_id": item.id,
                    "available": str(working[item.id].available),
                    "critical_threshold": str(item.critical_threshold),
                },
            )
        mutations.append(replace(mutation, reserved_delta=mutation.reserved_delta - held))
        lines.append(ReservationLine(
            item_id=item.id,
            name=item.name,
            sku=item.sku,
            unit=item.unit,
            requested_qty=request.quantity,
            available=available,
            ready=ready,
        ))

    requested_ids = {request.item_id for request in requested}
    kept = tuple(p for p in job.pending_purchase_lines if p.item_id not in requested_ids)
    pending = kept + tuple(new_pending)

    note = note or purchase_note(lines)
    purchase_order = None
    if new_pending:
        purchase_order = PurchaseOrder(
            id=purchase_order_id,
            job_id=job.id,
            lines=tuple(new_pending),
            created_at=now,
            note=note,
        )

    status = JobStatus.STOCK_PENDING if pending else JobStatus.READY_FOR_PRODUCTION
    updated = job.transitioned(
        status,
        pending_purchase_lines=pending,
        stock=StockRecord(
            consumed=consume_now,
            note=note,
            lines=tuple(lines),
            reserved_at=now,
            purchase_order_id=purchase_order.id if purchase_order else None,
        ),
    )

    touched = tuple(working[request.item_id] for request in requested)
    return ReservationResult(
        job=updated,
        items=touched,
        lines=tuple(lines),
        pending=pending,
        mutations=tuple(mutations),
        purchase_order=purchase_order,
        note=note,
    )



@dataclass(frozen=True)
class ReleaseResult:
    """Stock items with a reservation's mutations reversed."""

    items: tuple[StockItem, ...]


def release_reservation(
    items: Mapping[str, StockItem],
    mutations: Iterable[StockMutation],
) -> ReleaseResult:
    """Undo ``mutations`` against a fresh snapshot of the same items.

    Used when the job write that should follow a reservation fails, so the
    stock collaborator does not keep holds for a job that never moved.
    Reserved quantities are floored at zero.
    """
    working: dict[str, StockItem] = dict(items)
    for mutation in mutations:
        item = working.get(mutation.item_id)
        if item is None:
            raise StockItemNotFoundError(mutation.item_id)
        working[item.id] = replace(
            item,
            on_hand=item.on_hand - mutation.on_hand_delta,
            reserved=max(ZERO, item.reserved - mutation.reserved_delta),
        )
    return ReleaseResult(items=tuple(working.values()))
