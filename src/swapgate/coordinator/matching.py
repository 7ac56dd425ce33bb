"""Deposit matching policy.

An incoming transaction pays for an order when it happened no earlier than
the order was created and its amount is within a fixed absolute tolerance of
the requested amount. Fees can shift the amount that actually arrives, so
the match is approximate on purpose.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from swapgate.chains import Network
from swapgate.orders.models import Order
from swapgate.scanner.base import IncomingTransaction
from swapgate.utils.clock import as_utc

DEFAULT_TOLERANCES: dict[Network, Decimal] = {
    Network.ADA: Decimal("0.1"),
    Network.ETH: Decimal("0.001"),
}


def earliest_eligible_time(created_at: datetime) -> datetime:
    """Earliest on-chain timestamp that can pay for an order.

    Compared exactly: a block time in the same second as creation but before
    it does not qualify.
    """
    return as_utc(created_at)


def amount_matches(observed: Decimal, requested: Decimal, tolerance: Decimal) -> bool:
    """True when ``observed`` is strictly within ``tolerance`` of ``requested``."""
    return abs(Decimal(observed) - Decimal(requested)) < Decimal(tolerance)


def is_match(order: Order, tx: IncomingTransaction, tolerance: Decimal) -> bool:
    """Check one transaction against one pending order."""
    if tx.to_address != order.deposit_address:
        return False
    if as_utc(tx.timestamp) < earliest_eligible_time(order.created_at):
        return False
    return amount_matches(tx.amount, order.requested_amount, tolerance)


def find_match(
    order: Order,
    candidates: Iterable[IncomingTransaction],
    tolerances: Mapping[Network, Decimal] = DEFAULT_TOLERANCES,
) -> Optional[IncomingTransaction]:
    """First candidate (in observer order) that pays for ``order``, or None."""
    tolerance = tolerances[order.source_network]
    for tx in candidates:
        if is_match(order, tx, tolerance):
            return tx
    return None
