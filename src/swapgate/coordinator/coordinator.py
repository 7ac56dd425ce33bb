"""Swap coordinator.

One tick:

1. expire pending orders whose deadline passed
2. list active orders
3. look for deposits paying pending orders and claim them in the store
4. settle deposited orders through the destination network's executor

The coordinator keeps no state between ticks. Overlapping ticks, a second
process or a manual confirmation can all touch the same order; the store's
conditional transitions make sure each order is matched and paid at most once.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

from swapgate.chains import Network
from swapgate.coordinator.matching import (
    DEFAULT_TOLERANCES,
    earliest_eligible_time,
    find_match,
)
from swapgate.orders.models import Order, OrderStatus
from swapgate.orders.store import OrderStore
from swapgate.scanner.base import ChainObserver, IncomingTransaction
from swapgate.settlement.base import SettlementExecutor
from swapgate.utils.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """What a single tick did."""

    started_at: datetime
    expired: int = 0
    deposits_matched: int = 0
    settled: int = 0
    settlement_failures: int = 0
    parked: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def changed(self) -> bool:
        """True if the tick moved any order."""
        return bool(
            self.expired or self.deposits_matched or self.settled or self.settlement_failures
        )

    def __str__(self) -> str:
        return (
            f"expired={self.expired} matched={self.deposits_matched} "
            f"settled={self.settled} failed={self.settlement_failures} "
            f"parked={self.parked} skipped={self.skipped} errors={self.errors}"
        )


class SwapCoordinator:
    """Drives orders from deposit detection to settlement."""

    def __init__(
        self,
        store: OrderStore,
        observers: Mapping[Network, ChainObserver],
        executors: Mapping[Network, SettlementExecutor],
        tolerances: Optional[Mapping[Network, Decimal]] = None,
        clock: Clock = utcnow,
        indexer_timeout: float = 30.0,
        send_timeout: float = 120.0,
        max_concurrency: int = 8,
    ):
        """Initialize coordinator.

        Args:
            store: Order store (the only place order status changes)
            observers: Deposit observer per source network
            executors: Settlement executor per destination network
            tolerances: Absolute amount tolerance per source network
            clock: Returns the current time
            indexer_timeout: Upper bound for one observer query, in seconds
            send_timeout: Upper bound for one settlement send, in seconds
            max_concurrency: Max observer queries and sends in flight per tick
        """
        self.store = store
        self.observers = dict(observers)
        self.executors = dict(executors)
        self.tolerances = dict(DEFAULT_TOLERANCES)
        if tolerances:
            self.tolerances.update({Network(k): Decimal(v) for k, v in tolerances.items()})
        self.clock = clock
        self.indexer_timeout = indexer_timeout
        self.send_timeout = send_timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

        for network, executor in self.executors.items():
            if not executor.available:
                logger.warning(
                    f"{network.value} settlement unavailable - orders paying out "
                    f"{network.value} will stay deposited"
                )

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Run one coordinator pass.

        Args:
            now: Time to act as of (defaults to the clock)

        Returns:
            Counters describing what happened
        """
        now = as_utc(now) or as_utc(self.clock())
        report = TickReport(started_at=now)

        report.expired = await self.store.expire_stale(now)
        active = await self.store.list_active(now)

        pending = [o for o in active if o.status == OrderStatus.PENDING.value]
        ready = [
            o
            for o in active
            if o.status in (OrderStatus.DEPOSITED.value, OrderStatus.PROCESSING.value)
        ]

        deposited = await self._detect_deposits(pending, now, report)

        await asyncio.gather(
            *(self._settle_guarded(order, now, report) for order in ready + deposited)
        )

        if report.changed:
            logger.info(f"Tick finished: {report}")
        else:
            logger.debug(f"Tick finished: {report}")
        return report

    # Deposit detection
    async def _detect_deposits(
        self, pending: list[Order], now: datetime, report: TickReport
    ) -> list[Order]:
        """Match pending orders to incoming transactions.

        Orders sharing a custody address are matched oldest first against one
        observer result, and a transaction taken by one order is not offered
        to the next.

        Returns:
            Orders this tick moved to deposited
        """
        groups: dict[tuple[Network, str], list[Order]] = defaultdict(list)
        for order in pending:
            groups[(order.source_network, order.deposit_address)].append(order)

        results = await asyncio.gather(
            *(
                self._match_group(network, address, orders, now, report)
                for (network, address), orders in groups.items()
            ),
            return_exceptions=True,
        )

        deposited = []
        for (network, address), result in zip(groups, results):
            if isinstance(result, Exception):
                logger.error(f"Deposit detection for {network.value} {address} failed: {result}")
                report.errors += 1
                continue
            deposited.extend(result)
        return deposited

    async def _match_group(
        self,
        network: Network,
        address: str,
        orders: list[Order],
        now: datetime,
        report: TickReport,
    ) -> list[Order]:
        observer = self.observers.get(network)
        if observer is None:
            logger.warning(f"No {network.value} observer configured; {len(orders)} orders waiting")
            return []

        not_before = min(earliest_eligible_time(o.created_at) for o in orders)
        candidates = await self._query(observer, address, not_before)
        if not candidates:
            return []

        # Transactions already paying another order never pay a second one
        attributed = await self.store.find_attributed([tx.tx_ref for tx in candidates])
        remaining = [tx for tx in candidates if tx.tx_ref not in attributed]

        matched = []
        for order in sorted(orders, key=lambda o: (as_utc(o.created_at), o.id)):
            tx = find_match(order, remaining, self.tolerances)
            if tx is None:
                continue
            remaining.remove(tx)

            try:
                won = await self.store.try_mark_deposited(order.id, tx.tx_ref, now=now)
            except Exception as e:
                logger.error(f"Failed to record deposit {tx.tx_ref} for order {order.id}: {e}")
                report.errors += 1
                continue

            if won:
                logger.info(
                    f"Deposit {tx.tx_ref} ({tx.amount} {network.value}) matched to order {order.id}"
                )
                report.deposits_matched += 1
                matched.append(order)
            else:
                report.skipped += 1
        return matched

    async def _query(
        self, observer: ChainObserver, address: str, not_before: datetime
    ) -> list[IncomingTransaction]:
        """Bounded observer query; a timeout means no deposits this tick."""
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    observer.query_incoming(address, not_before), timeout=self.indexer_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"{observer.network.value} indexer query for {address} timed out "
                    f"after {self.indexer_timeout}s"
                )
                return []

    # Settlement
    async def _settle_guarded(self, order: Order, now: datetime, report: TickReport) -> None:
        try:
            await self._settle(order, now, report)
        except Exception as e:
            logger.error(f"Unexpected error settling order {order.id}: {e}")
            report.errors += 1

    async def _settle(self, order: Order, now: datetime, report: TickReport) -> None:
        """Claim and pay out one order.

        The send happens only after winning ``deposited -> processing``. A
        failed send is recorded and the order stays in processing; it is
        never sent again automatically.
        """
        network = order.destination_network
        executor = self.executors.get(network)
        if executor is None or not executor.available:
            report.parked += 1
            return

        if not await self.store.try_mark_processing(order.id, now=now):
            report.skipped += 1
            return

        async with self._semaphore:
            try:
                tx_ref = await asyncio.wait_for(
                    executor.send(order.recipient_address, order.output_amount),
                    timeout=self.send_timeout,
                )
            except asyncio.TimeoutError:
                message = f"send timed out after {self.send_timeout}s; outcome unknown"
                await self._fail(order, message, report)
                return
            except Exception as e:
                await self._fail(order, f"{type(e).__name__}: {e}", report)
                return

        try:
            await self.store.mark_completed(order.id, tx_ref, now=self.clock())
        except Exception as e:
            # Payment is on chain; only the bookkeeping failed
            await self._fail(
                order, f"sent {tx_ref} but could not record completion: {e}", report
            )
            return
        report.settled += 1

    async def _fail(self, order: Order, message: str, report: TickReport) -> None:
        logger.error(
            f"Settlement of order {order.id} ({order.output_amount} "
            f"{order.destination_network.value} to {order.recipient_address}) failed: "
            f"{message}. Order left in processing for manual review."
        )
        report.settlement_failures += 1
        await self.store.record_settlement_error(order.id, message)
