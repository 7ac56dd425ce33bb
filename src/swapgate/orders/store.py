"""Order store with atomic conditional status transitions.

Every status change is a single ``UPDATE ... WHERE status = <expected>``
statement and its rowcount decides the outcome. Two callers racing on the
same order (overlapping coordinator ticks, a manual override, a second
process) can both attempt a transition and exactly one of them wins; the
other gets ``False`` back. Nothing outside this module writes ``status``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from swapgate.orders.models import ACTIVE_STATUSES, Order, OrderStatus
from swapgate.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class DuplicateOrderError(Exception):
    """Raised when an order id already exists."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} already exists")


class OrderNotFoundError(LookupError):
    """Raised when an order id is unknown."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class OrderStateError(Exception):
    """Raised when a transition is requested from the wrong state."""

    pass


class OrderStore:
    """Durable order records exposing only guarded transitions.

    Each public method runs in its own short transaction, so the store can be
    shared by concurrent coroutines (and processes, given a shared database).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _apply(self, stmt) -> int:
        """Execute a guarded UPDATE and return the number of rows it changed."""
        stmt = stmt.execution_options(synchronize_session=False)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount

    # Creation and reads
    async def create(self, order: Order) -> Order:
        """Insert a new order in ``pending``.

        Raises:
            DuplicateOrderError: If the id is already taken
        """
        order.status = OrderStatus.PENDING.value
        order.deposit_tx_ref = None
        order.output_tx_ref = None

        try:
            async with self._transaction() as session:
                session.add(order)
                await session.flush()
        except IntegrityError as e:
            raise DuplicateOrderError(order.id) from e

        logger.info(
            f"Order {order.id} created: {order.direction} {order.requested_amount} "
            f"-> {order.output_amount}, expires {order.expires_at.isoformat()}"
        )
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        """Get an order by id, or None if unknown."""
        async with self._transaction() as session:
            return await session.get(Order, order_id)

    async def list_active(self, now: Optional[datetime] = None) -> list[Order]:
        """Orders still in flight whose expiry has not passed, oldest first."""
        now = as_utc(now) or utcnow()
        stmt = (
            select(Order)
            .where(
                Order.status.in_([s.value for s in ACTIVE_STATUSES]),
                Order.expires_at > now,
            )
            .order_by(Order.created_at, Order.id)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        """Number of orders per status."""
        stmt = select(Order.status, func.count(Order.id)).group_by(Order.status)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return {status: count for status, count in result.all()}

    async def find_attributed(self, tx_refs: list[str]) -> set[str]:
        """Subset of ``tx_refs`` already recorded as some order's deposit."""
        if not tx_refs:
            return set()
        stmt = select(Order.deposit_tx_ref).where(Order.deposit_tx_ref.in_(tx_refs))
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return set(result.scalars().all())

    async def list_needing_attention(
        self, now: Optional[datetime] = None, stuck_after: timedelta = timedelta(minutes=15)
    ) -> list[Order]:
        """Orders the coordinator will not finish on its own.

        - ``processing`` orders that recorded a settlement error or have been
          processing longer than ``stuck_after``
        - ``deposited`` orders whose expiry passed (they left the active list
          before being settled)
        """
        now = as_utc(now) or utcnow()
        stmt = (
            select(Order)
            .where(
                or_(
                    and_(
                        Order.status == OrderStatus.PROCESSING.value,
                        or_(
                            Order.settlement_error.is_not(None),
                            Order.processing_at <= now - stuck_after,
                        ),
                    ),
                    and_(
                        Order.status == OrderStatus.DEPOSITED.value,
                        Order.expires_at <= now,
                    ),
                )
            )
            .order_by(Order.created_at, Order.id)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # Transitions
    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        """Move every pending order with expires_at <= now to ``expired``.

        Returns:
            Number of orders expired by this call
        """
        now = as_utc(now) or utcnow()
        count = await self._apply(
            update(Order)
            .where(
                Order.status == OrderStatus.PENDING.value,
                Order.expires_at <= now,
            )
            .values(status=OrderStatus.EXPIRED.value)
        )
        if count:
            logger.info(f"Expired {count} stale orders")
        return count

    async def try_mark_deposited(
        self, order_id: str, deposit_tx_ref: str, now: Optional[datetime] = None
    ) -> bool:
        """Atomically move ``pending -> deposited``.

        Returns False (never raises) when the order is no longer pending or
        the transaction is already attributed to another order.
        """
        now = as_utc(now) or utcnow()
        claimed = aliased(Order)
        already_attributed = (
            select(claimed.id).where(claimed.deposit_tx_ref == deposit_tx_ref).exists()
        )
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING.value,
                ~already_attributed,
            )
            .values(
                status=OrderStatus.DEPOSITED.value,
                deposit_tx_ref=deposit_tx_ref,
                deposited_at=now,
            )
        )

        try:
            won = await self._apply(stmt) == 1
        except IntegrityError:
            # Unique index on deposit_tx_ref caught a concurrent attribution
            won = False

        if won:
            logger.info(f"Order {order_id} marked deposited (tx {deposit_tx_ref})")
        else:
            logger.debug(f"Order {order_id} not marked deposited (tx {deposit_tx_ref}): lost race")
        return won

    async def try_mark_processing(self, order_id: str, now: Optional[datetime] = None) -> bool:
        """Atomically move ``deposited -> processing``.

        The caller that gets True owns the settlement for this order; every
        other caller gets False.
        """
        now = as_utc(now) or utcnow()
        won = (
            await self._apply(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status == OrderStatus.DEPOSITED.value,
                )
                .values(status=OrderStatus.PROCESSING.value, processing_at=now)
            )
            == 1
        )

        if won:
            logger.info(f"Order {order_id} claimed for settlement")
        else:
            logger.debug(f"Order {order_id} already claimed for settlement")
        return won

    async def mark_completed(
        self, order_id: str, output_tx_ref: str, now: Optional[datetime] = None
    ) -> None:
        """Move ``processing -> completed`` after a successful send.

        Raises:
            OrderStateError: If the order is not in ``processing``
        """
        now = as_utc(now) or utcnow()
        count = await self._apply(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PROCESSING.value,
            )
            .values(
                status=OrderStatus.COMPLETED.value,
                output_tx_ref=output_tx_ref,
                completed_at=now,
                settlement_error=None,
            )
        )
        if count != 1:
            raise OrderStateError(
                f"Order {order_id} is not processing; cannot record output tx {output_tx_ref}"
            )
        logger.info(f"Order {order_id} completed (tx {output_tx_ref})")

    async def record_settlement_error(self, order_id: str, message: str) -> None:
        """Store the last settlement failure on a processing order."""
        await self._apply(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PROCESSING.value,
            )
            .values(settlement_error=message[:MAX_ERROR_LENGTH])
        )
