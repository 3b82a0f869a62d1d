"""ORM models owned by the surrounding application (read-mostly here)."""

from ordermgmt_kernel.models.catalog import OrderLineModel, OrderModel, SkuModel
from ordermgmt_kernel.models.inventory import CurrentStockModel, StockMovementModel
from ordermgmt_kernel.models.workspace import WorkspaceBackupModel, WorkspaceModel

__all__ = [
    "OrderModel",
    "OrderLineModel",
    "SkuModel",
    "CurrentStockModel",
    "StockMovementModel",
    "WorkspaceModel",
    "WorkspaceBackupModel",
]
