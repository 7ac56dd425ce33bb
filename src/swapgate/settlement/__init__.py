"""Settlement executors that send the outbound leg of a swap."""

from swapgate.settlement.base import (
    SettlementError,
    SettlementExecutor,
    SettlementUnavailableError,
    SimulatedSettlementExecutor,
)
from swapgate.settlement.factory import get_custody_addresses, get_executor, get_executors

__all__ = [
    "SettlementError",
    "SettlementExecutor",
    "SettlementUnavailableError",
    "SimulatedSettlementExecutor",
    "get_custody_addresses",
    "get_executor",
    "get_executors",
]
