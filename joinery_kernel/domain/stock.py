"""
Stock Domain Models (``joinery_kernel.domain.stock``).

Responsibility
--------------
Frozen value objects for stock items, reservation requests, the per-item
quantity deltas a reservation produces, and the purchase-order record
synthesised for backordered lines.

Invariants
----------
- ``StockItem.on_hand >= 0`` and ``StockItem.reserved >= 0``.
- ``StockItem.available == max(0, on_hand - reserved)``; derived on every
  read, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from joinery_kernel.domain.job import ZERO, PendingLine
from joinery_kernel.logging_config import get_logger

logger = get_logger("domain.stock")


@dataclass(frozen=True)
class StockItem:
    """
    A stocked material (profile, glass, hardware...).

    Raises:
        ValueError: If on-hand or reserved quantity is negative.
    """

    id: str
    sku: str
    name: str
    on_hand: Decimal
    reserved: Decimal = ZERO
    color: str = ""
    supplier: str = ""
    critical_threshold: Decimal = ZERO
    unit: str = ""

    def __post_init__(self):
        if self.on_hand < 0:
            logger.warning(
                "stock_item_negative_on_hand",
                extra={"item_id": self.id, "on_hand": str(self.on_hand)},
            )
            raise ValueError("on_hand cannot be negative")
        if self.reserved < 0:
            logger.warning(
                "stock_item_negative_reserved",
                extra={"item_id": self.id, "reserved": str(self.reserved)},
            )
            raise ValueError("reserved cannot be negative")

    @property
    def available(self) -> Decimal:
        return max(ZERO, self.on_hand - self.reserved)

    @property
    def is_critical(self) -> bool:
        return self.available <= self.critical_threshold


@dataclass(frozen=True)
class ReservationRequest:
    """One requested line: ``quantity`` of stock item ``item_id``."""

    item_id: str
    quantity: Decimal

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(
                f"reservation quantity must be positive (got {self.quantity})"
            )


@dataclass(frozen=True)
class StockMutation:
    """Quantity deltas for one stock item, applied atomically by the store."""

    item_id: str
    on_hand_delta: Decimal = ZERO
    reserved_delta: Decimal = ZERO


@dataclass(frozen=True)
class PurchaseOrder:
    """Groups all pending lines of one reservation for resupply."""

    id: str
    job_id: str
    lines: tuple[PendingLine, ...]
    created_at: datetime
    note: str = ""
    status: str = "pending"

    @property
    def total_missing(self) -> Decimal:
        return sum((line.missing for line in self.lines), ZERO)
