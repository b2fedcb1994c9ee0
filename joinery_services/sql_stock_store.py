"""
SqlStockStore -- SQLAlchemy-backed stock collaborator.

Responsibility:
    Read the stock snapshot and apply a reservation atomically per item.

Architecture position:
    Services layer, imperative shell.  Wraps the pure reservation plan
    with row locks; holds no reservation arithmetic of its own.

Invariants enforced:
    - Item rows are locked (SELECT ... FOR UPDATE) in id order before the
      plan reads ``available``, and stay locked until the caller commits,
      so read-of-available and write-of-reserved never interleave.
    - Flush-only: the caller owns commit/rollback (``session_scope()``).

Failure modes:
    - StockItemNotFoundError if any requested id has no row.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from joinery_kernel.domain.stock import StockItem
from joinery_kernel.exceptions import StockItemNotFoundError
from joinery_kernel.logging_config import get_logger
from joinery_kernel.models.stock_item import StockItemModel

logger = get_logger("services.sql_stock_store")

T = TypeVar("T")


class SqlStockStore:
    """Stock store over the ``stock_items`` table."""

    def __init__(self, session: Session):
        self._session = session

    def get_stock_items(self) -> list[StockItem]:
        rows = self._session.execute(
            select(StockItemModel).order_by(StockItemModel.sku)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def add_item(self, item: StockItem) -> StockItem:
        row = StockItemModel.from_dto(item)
        self._session.add(row)
        self._session.flush()
        logger.info("stock_item_added", extra={"item_id": row.id, "sku": row.sku})
        return row.to_dto()

    def apply_reservation(
        self,
        item_ids: Sequence[str],
        plan: Callable[[dict[str, StockItem]], T],
    ) -> T:
        """Lock the rows, run ``plan`` on the fresh snapshot, write back its items.

        ``plan`` must return an object whose ``items`` attribute holds the
        updated ``StockItem`` values (see ``ReservationResult``).
        """
        wanted = sorted(set(item_ids))
        # INVARIANT: lock in id order; populate_existing discards stale identity-map state.
        rows = self._session.execute(
            select(StockItemModel)
            .where(StockItemModel.id.in_(wanted))
            .order_by(StockItemModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

        by_id = {row.id: row for row in rows}
        for item_id in wanted:
            if item_id not in by_id:
                raise StockItemNotFoundError(item_id)

        result: Any = plan({item_id: row.to_dto() for item_id, row in by_id.items()})

        for item in result.items:
            row = by_id[item.id]
            row.on_hand = item.on_hand
            row.reserved = item.reserved
        self._session.flush()

        logger.info(
            "stock_reservation_applied",
            extra={
                "item_ids": wanted,
                "available": {item.id: str(item.available) for item in result.items},
            },
        )
        return result
