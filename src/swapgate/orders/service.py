"""Order boundaries used by the API and the operator CLI.

- creation: quote the output, pick the custody address, persist in pending
- query: read an order by id
- manual deposit confirmation: same guarded transition as automatic detection
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Mapping, Optional

from swapgate.chains import Direction, Network
from swapgate.orders.models import Order, OrderStatus
from swapgate.orders.store import OrderNotFoundError, OrderStore
from swapgate.quotes import QuoteSource
from swapgate.utils.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


class CustodyAddressMissingError(RuntimeError):
    """Raised when no custody address is configured for a network."""

    def __init__(self, network: Network):
        self.network = network
        super().__init__(f"No custody address configured for {network.value}")


class DepositConfirmationError(Exception):
    """Raised when a manual deposit confirmation loses to the current state."""

    def __init__(self, order_id: str, status: str, deposit_tx_ref: str):
        self.order_id = order_id
        self.status = status
        self.deposit_tx_ref = deposit_tx_ref
        if status == OrderStatus.PENDING.value:
            message = f"Deposit {deposit_tx_ref} is already attributed to another order"
        else:
            message = f"Order {order_id} is {status}, not pending"
        super().__init__(message)


@dataclass
class CreatedOrder:
    """What the requester needs to make the deposit."""

    order_id: str
    deposit_address: str
    requested_amount: Decimal
    output_amount: Decimal
    expires_at: datetime


class OrderService:
    """Creates, reads and manually confirms swap orders."""

    def __init__(
        self,
        store: OrderStore,
        quotes: QuoteSource,
        custody_addresses: Mapping[Network, Optional[str]],
        expiry: timedelta = timedelta(minutes=30),
        clock: Clock = utcnow,
    ):
        self.store = store
        self.quotes = quotes
        self.custody_addresses = dict(custody_addresses)
        self.expiry = expiry
        self.clock = clock

    async def create_order(
        self, direction: Direction, amount: Decimal, recipient_address: str
    ) -> CreatedOrder:
        """Create a pending order.

        Raises:
            QuoteError: If the amount cannot be quoted
            CustodyAddressMissingError: If the source network has no custody address
        """
        direction = Direction(direction)
        deposit_address = self.custody_addresses.get(direction.source)
        if not deposit_address:
            raise CustodyAddressMissingError(direction.source)

        output_amount = self.quotes.quote(direction, amount)
        now = as_utc(self.clock())

        order = Order(
            id=str(uuid.uuid4()),
            direction=direction.value,
            requested_amount=amount,
            recipient_address=recipient_address,
            deposit_address=deposit_address,
            output_amount=output_amount,
            created_at=now,
            expires_at=now + self.expiry,
        )
        await self.store.create(order)

        return CreatedOrder(
            order_id=order.id,
            deposit_address=order.deposit_address,
            requested_amount=order.requested_amount,
            output_amount=order.output_amount,
            expires_at=order.expires_at,
        )

    async def get_order(self, order_id: str) -> Order:
        """Get an order.

        Raises:
            OrderNotFoundError: If the id is unknown
        """
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def confirm_deposit(self, order_id: str, deposit_tx_ref: Optional[str] = None) -> str:
        """Mark a pending order as deposited by hand.

        Goes through the same conditional transition as the coordinator, so
        it can never overwrite a deposit the coordinator already matched.

        Returns:
            The deposit reference recorded on the order

        Raises:
            OrderNotFoundError: If the id is unknown
            DepositConfirmationError: If the order is no longer pending
        """
        order = await self.get_order(order_id)
        tx_ref = deposit_tx_ref or f"manual_deposit_{secrets.token_hex(8)}"

        if not await self.store.try_mark_deposited(order.id, tx_ref, now=self.clock()):
            current = await self.get_order(order_id)
            raise DepositConfirmationError(order_id, OrderStatus(current.status).value, tx_ref)

        logger.info(f"Order {order_id} deposit confirmed manually (ref {tx_ref})")
        return tx_ref
