"""ORM rows for the stock and activity-log collaborators."""

from joinery_kernel.models.activity_log import ActivityLogModel
from joinery_kernel.models.stock_item import StockItemModel

__all__ = ["ActivityLogModel", "StockItemModel"]
