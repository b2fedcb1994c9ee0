"""
Module: joinery_kernel.models.stock_item
Responsibility: ORM row for a stocked material.  Maps to the frozen
    ``joinery_kernel.domain.stock.StockItem`` value object.

Invariants enforced:
    - Quantities use Decimal (Numeric(38,9)) -- NEVER float.
    - ``available`` is NOT a column; it is derived on every read as
      max(0, on_hand - reserved).
    - CHECK constraints keep on_hand and reserved non-negative.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from joinery_kernel.db.base import TrackedBase
from joinery_kernel.domain.stock import StockItem


class StockItemModel(TrackedBase):
    """ORM model for stock items."""

    __tablename__ = "stock_items"

    __table_args__ = (
        Index("idx_stock_item_sku", "sku", unique=True),
        CheckConstraint("on_hand >= 0", name="ck_stock_item_on_hand"),
        CheckConstraint("reserved >= 0", name="ck_stock_item_reserved"),
    )

    sku: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(255))
    color: Mapped[str] = mapped_column(String(100), default="")
    supplier: Mapped[str] = mapped_column(String(255), default="")
    unit: Mapped[str] = mapped_column(String(50), default="")

    on_hand: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reserved: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    critical_threshold: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    def to_dto(self) -> StockItem:
        """Convert ORM model to frozen StockItem DTO."""
        return StockItem(
            id=self.id,
            sku=self.sku,
            name=self.name,
            on_hand=Decimal(self.on_hand),
            reserved=Decimal(self.reserved),
            color=self.color or "",
            supplier=self.supplier or "",
            critical_threshold=Decimal(self.critical_threshold),
            unit=self.unit or "",
        )

    @classmethod
    def from_dto(cls, item: StockItem) -> "StockItemModel":
        return cls(
            id=item.id,
            sku=item.sku,
            name=item.name,
            color=item.color,
            supplier=item.supplier,
            unit=item.unit,
            on_hand=item.on_hand,
            reserved=item.reserved,
            critical_threshold=item.critical_threshold,
        )
