# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    PaymentStatus, DeliveryStatus, Priority, ReturnType, StockAction,
    OPEN_STATUSES, TERMINAL_STATUSES,

    # Stock ledger
    StockEntry, StockHistory,

    # Orders
    Order,

    # Push notifications
    PushSubscription,
)

__all__ = [
    "PaymentStatus", "DeliveryStatus", "Priority", "ReturnType", "StockAction",
    "OPEN_STATUSES", "TERMINAL_STATUSES",
    "StockEntry", "StockHistory",
    "Order",
    "PushSubscription",
]
