"""Construction of the coordinator and its scheduler from settings."""

from typing import Optional

from swapgate.chains import Network
from swapgate.config import get_settings
from swapgate.coordinator.coordinator import SwapCoordinator
from swapgate.coordinator.scheduler import OverlapPolicy, TickScheduler
from swapgate.orders.factory import get_store
from swapgate.orders.store import OrderStore
from swapgate.scanner.factory import get_observers
from swapgate.settlement.factory import get_executors


def build_coordinator(store: Optional[OrderStore] = None) -> SwapCoordinator:
    """Coordinator wired to the configured observers and executors."""
    settings = get_settings()
    return SwapCoordinator(
        store=store or get_store(),
        observers=get_observers(),
        executors=get_executors(),
        tolerances={
            Network.ADA: settings.ada_tolerance,
            Network.ETH: settings.eth_tolerance,
        },
        indexer_timeout=settings.indexer_timeout,
        send_timeout=settings.send_timeout,
        max_concurrency=settings.max_concurrency,
    )


def build_scheduler(coordinator: SwapCoordinator) -> TickScheduler:
    """Scheduler ticking ``coordinator`` at the configured cadence."""
    settings = get_settings()
    return TickScheduler(
        coordinator.tick,
        interval=settings.coordinator_interval,
        overlap=OverlapPolicy(settings.coordinator_overlap.lower()),
    )
