from .projection import OrdersProjection, StockProjection  # noqa: F401
from .snapshot_store import SnapshotStore  # noqa: F401
from .sync import ProjectionClient  # noqa: F401

__all__ = ["OrdersProjection", "StockProjection", "SnapshotStore", "ProjectionClient"]
