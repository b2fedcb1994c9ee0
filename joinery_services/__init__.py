"""
Module: joinery_services
Responsibility:
    Imperative shell around the pure engines: the lifecycle controller,
    collaborator contracts, the best-effort activity logger and the
    SQLAlchemy-backed stock and log stores.

Architecture position:
    Services -- may import joinery_engines, joinery_kernel and
    joinery_config.  Nothing in the kernel or engines imports this package.
"""

from joinery_services.activity_log import ActivityLogger, build_entry
from joinery_services.lifecycle_controller import JobLifecycleController, policy_from_config
from joinery_services.sql_log_store import SqlLogStore
from joinery_services.sql_stock_store import SqlStockStore
from joinery_services.stores import DocumentStore, JobStore, LogStore, StockStore

__all__ = [
    "ActivityLogger",
    "DocumentStore",
    "JobLifecycleController",
    "JobStore",
    "LogStore",
    "SqlLogStore",
    "SqlStockStore",
    "StockStore",
    "build_entry",
    "policy_from_config",
]
