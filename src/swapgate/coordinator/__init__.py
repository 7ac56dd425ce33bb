"""Swap coordinator: deposit detection, settlement and the tick loop."""

from swapgate.coordinator.coordinator import SwapCoordinator, TickReport
from swapgate.coordinator.factory import build_coordinator, build_scheduler
from swapgate.coordinator.matching import DEFAULT_TOLERANCES, find_match, is_match
from swapgate.coordinator.scheduler import OverlapPolicy, TickScheduler

__all__ = [
    "DEFAULT_TOLERANCES",
    "OverlapPolicy",
    "SwapCoordinator",
    "TickReport",
    "TickScheduler",
    "build_coordinator",
    "build_scheduler",
    "find_match",
    "is_match",
]
