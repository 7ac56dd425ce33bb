"""Base interface for settlement executors.

A settlement executor performs the outbound payment of a swap: it sends the
destination asset to the user's recipient address and returns the transaction
reference. Sends are never retried here; a send whose outcome is unknown could
otherwise pay twice.
"""

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from swapgate.chains import Network

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Raised when an outbound transfer fails to build, sign or submit."""

    pass


class SettlementUnavailableError(SettlementError):
    """Raised when no signing capability is configured for a network."""

    def __init__(self, network: Network, reason: str = "no signing key configured"):
        self.network = network
        super().__init__(f"{network.value} settlement unavailable: {reason}")


class SettlementExecutor(ABC):
    """Abstract base class for per-network settlement executors."""

    def __init__(self, network: Network):
        self.network = network

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether this executor can sign and submit transactions."""
        pass

    @abstractmethod
    async def send(self, recipient_address: str, amount: Decimal) -> str:
        """Send ``amount`` of the network's native asset.

        Args:
            recipient_address: Destination address (opaque to the core)
            amount: Amount in whole coins (ADA / ETH)

        Returns:
            Transaction reference (hash)

        Raises:
            SettlementUnavailableError: If no signing capability is configured
            SettlementError: If the transfer could not be submitted
        """
        pass


class SimulatedSettlementExecutor(SettlementExecutor):
    """Simulated executor for dry-run mode and tests."""

    def __init__(
        self,
        network: Network,
        available: bool = True,
        fail_with: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__(network)
        self._available = available
        self.fail_with = fail_with
        self.delay = delay
        self.sent: list[tuple[str, Decimal, str]] = []
        self.attempts = 0

    @property
    def available(self) -> bool:
        return self._available

    async def send(self, recipient_address: str, amount: Decimal) -> str:
        """Simulate an outbound transfer."""
        if not self._available:
            raise SettlementUnavailableError(self.network, "simulated executor disabled")

        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

        # Generate fake txid
        txid = f"sim_tx_{secrets.token_hex(32)}"
        self.sent.append((recipient_address, amount, txid))

        logger.info(f"[SIMULATED] Settlement: {amount} {self.network.value} to {recipient_address}")
        return txid
