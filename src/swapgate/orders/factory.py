"""Construction of the order store and order service from settings."""

from datetime import timedelta
from typing import Optional

from swapgate.config import get_settings
from swapgate.orders.database import get_session_factory
from swapgate.orders.service import OrderService
from swapgate.orders.store import OrderStore
from swapgate.quotes import FixedRateQuoteSource


def get_store() -> OrderStore:
    """Order store bound to the configured database."""
    return OrderStore(get_session_factory())


def build_order_service(store: Optional[OrderStore] = None) -> OrderService:
    """Order service using the configured rate, expiry and custody addresses."""
    from swapgate.settlement.factory import get_custody_addresses

    settings = get_settings()
    return OrderService(
        store=store or get_store(),
        quotes=FixedRateQuoteSource(settings.exchange_rate),
        custody_addresses=get_custody_addresses(),
        expiry=timedelta(seconds=settings.order_expiry_seconds),
    )
