"""Chain observers that detect deposits to custody addresses."""

from swapgate.scanner.base import ChainObserver, IncomingTransaction, SimulatedObserver
from swapgate.scanner.factory import get_observer, get_observers

__all__ = [
    "ChainObserver",
    "IncomingTransaction",
    "SimulatedObserver",
    "get_observer",
    "get_observers",
]
