"""Base interface for chain observers.

A chain observer asks an external indexer which confirmed transactions paid
into a custody address. Observers never raise for indexer trouble: a failed or
malformed response means "no new deposits this tick".
"""

import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from swapgate.chains import Network
from swapgate.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncomingTransaction:
    """A confirmed transfer into a custody address."""

    tx_ref: str
    network: Network
    to_address: str
    amount: Decimal
    timestamp: datetime
    from_address: Optional[str] = None


class ChainObserver(ABC):
    """Abstract base class for per-network deposit observers."""

    def __init__(self, network: Network):
        self.network = network

    @abstractmethod
    async def fetch_incoming(
        self, address: str, not_before: datetime
    ) -> list[IncomingTransaction]:
        """Fetch recent incoming transactions to ``address`` from the indexer.

        ``not_before`` lets implementations stop paging early; the result is
        filtered on it again by query_incoming(). Implementations may raise
        on I/O or parse errors; query_incoming() turns those into an empty
        result.
        """
        pass

    async def query_incoming(
        self, address: str, not_before: datetime
    ) -> list[IncomingTransaction]:
        """Confirmed incoming transfers to ``address`` at or after ``not_before``.

        Args:
            address: Custody address to inspect
            not_before: Earliest on-chain timestamp of interest

        Returns:
            Transactions in indexer order (newest first for the real indexers);
            empty when the indexer is unreachable or returns garbage
        """
        try:
            transactions = await self.fetch_incoming(address, not_before)
        except Exception as e:
            logger.warning(f"{self.network.value} indexer query for {address} failed: {e}")
            return []

        not_before = as_utc(not_before)
        return [tx for tx in transactions if tx.timestamp >= not_before and tx.amount > 0]


class SimulatedObserver(ChainObserver):
    """In-memory observer for dry-run mode and tests (no indexer access)."""

    def __init__(self, network: Network):
        super().__init__(network)
        self._transactions: list[IncomingTransaction] = []
        self.fail_next: Optional[Exception] = None
        self.queries = 0

    async def fetch_incoming(
        self, address: str, not_before: datetime
    ) -> list[IncomingTransaction]:
        """Return simulated transactions, newest first."""
        self.queries += 1
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

        matching = [tx for tx in self._transactions if tx.to_address == address]
        return sorted(matching, key=lambda tx: tx.timestamp, reverse=True)

    def add_simulated_deposit(
        self,
        address: str,
        amount: Decimal,
        timestamp: Optional[datetime] = None,
        tx_ref: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> IncomingTransaction:
        """Add a simulated deposit for testing."""
        tx = IncomingTransaction(
            tx_ref=tx_ref or f"sim_tx_{secrets.token_hex(16)}",
            network=self.network,
            to_address=address,
            amount=Decimal(amount),
            timestamp=as_utc(timestamp) or utcnow(),
            from_address=from_address,
        )
        self._transactions.append(tx)
        return tx

    def clear(self) -> None:
        """Forget all simulated deposits."""
        self._transactions.clear()
