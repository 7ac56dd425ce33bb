"""Order storage and the order lifecycle state machine."""

from swapgate.orders.database import close_db, get_session_factory, init_db
from swapgate.orders.models import ACTIVE_STATUSES, Order, OrderStatus
from swapgate.orders.store import (
    DuplicateOrderError,
    OrderNotFoundError,
    OrderStateError,
    OrderStore,
)

__all__ = [
    # Models
    "Order",
    "OrderStatus",
    "ACTIVE_STATUSES",
    # Store
    "OrderStore",
    "DuplicateOrderError",
    "OrderNotFoundError",
    "OrderStateError",
    # Database
    "get_session_factory",
    "init_db",
    "close_db",
]
