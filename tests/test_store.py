"""Order store tests.

These tests ensure that:
1. Every transition is conditional on the current status
2. Concurrent callers racing on one transition produce exactly one winner
3. Status never moves backwards
4. Expired orders can never be deposited
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import T0
from swapgate.orders.database import async_database_url
from swapgate.orders.models import STATUS_RANK, OrderStatus
from swapgate.orders.store import DuplicateOrderError, OrderStateError


async def _status(store, order_id: str) -> OrderStatus:
    order = await store.get(order_id)
    return OrderStatus(order.status)


class TestCreateAndRead:
    """Tests for order creation and reads."""

    @pytest.mark.asyncio
    async def test_create_forces_pending(self, store, make_order):
        order = await make_order()

        stored = await store.get(order.id)
        assert stored is not None
        assert stored.status == OrderStatus.PENDING.value
        assert stored.deposit_tx_ref is None
        assert stored.output_tx_ref is None
        assert stored.requested_amount == Decimal("10")
        assert stored.output_amount == Decimal("0.005")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount,output",
        [
            ("3400", "1.7"),
            ("0.123456789012345678", "246.913578"),
            ("1000000000", "0.000000000000000001"),
        ],
    )
    async def test_amounts_read_back_exactly(self, store, make_order, amount, output):
        order = await make_order(amount=amount, output=output)

        stored = await store.get(order.id)

        assert stored.requested_amount == Decimal(amount)
        assert stored.output_amount == Decimal(output)
        assert format(stored.output_amount, "f") == output

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, make_order):
        await make_order(order_id="dup")

        with pytest.raises(DuplicateOrderError):
            await make_order(order_id="dup")

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store):
        assert await store.get("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_list_active_oldest_first(self, store, make_order):
        late = await make_order(created_at=T0 + timedelta(seconds=30))
        early = await make_order(created_at=T0)

        active = await store.list_active(now=T0 + timedelta(seconds=60))

        assert [o.id for o in active] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_list_active_excludes_terminal_and_past_expiry(self, store, make_order):
        live = await make_order(expires_in=1800)
        stale = await make_order(expires_in=5)
        done = await make_order()
        await store.try_mark_deposited(done.id, "tx-done", now=T0)
        await store.try_mark_processing(done.id, now=T0)
        await store.mark_completed(done.id, "out-done", now=T0)

        active = await store.list_active(now=T0 + timedelta(seconds=10))

        ids = {o.id for o in active}
        assert live.id in ids
        assert stale.id not in ids
        assert done.id not in ids

    @pytest.mark.asyncio
    async def test_count_by_status(self, store, make_order):
        first = await make_order()
        await make_order()
        await store.try_mark_deposited(first.id, "tx-1", now=T0)

        counts = await store.count_by_status()

        assert counts == {"pending": 1, "deposited": 1}


class TestDepositTransition:
    """Tests for pending -> deposited."""

    @pytest.mark.asyncio
    async def test_mark_deposited_records_ref(self, store, make_order):
        order = await make_order()

        assert await store.try_mark_deposited(order.id, "tx-abc", now=T0) is True

        stored = await store.get(order.id)
        assert stored.status == OrderStatus.DEPOSITED.value
        assert stored.deposit_tx_ref == "tx-abc"
        assert stored.deposited_at is not None

    @pytest.mark.asyncio
    async def test_second_deposit_loses(self, store, make_order):
        order = await make_order()
        await store.try_mark_deposited(order.id, "tx-first", now=T0)

        assert await store.try_mark_deposited(order.id, "tx-second", now=T0) is False

        stored = await store.get(order.id)
        assert stored.deposit_tx_ref == "tx-first"

    @pytest.mark.asyncio
    async def test_unknown_order_returns_false(self, store):
        assert await store.try_mark_deposited("missing", "tx", now=T0) is False

    @pytest.mark.asyncio
    async def test_same_tx_never_attributed_twice(self, store, make_order):
        first = await make_order()
        second = await make_order()

        assert await store.try_mark_deposited(first.id, "tx-shared", now=T0) is True
        assert await store.try_mark_deposited(second.id, "tx-shared", now=T0) is False

        assert await _status(store, second.id) is OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_concurrent_deposits_single_winner(self, store, make_order):
        """N concurrent attempts on one order: exactly one wins, its ref is stored."""
        order = await make_order()
        refs = [f"tx-{i}" for i in range(10)]

        results = await asyncio.gather(
            *(store.try_mark_deposited(order.id, ref, now=T0) for ref in refs)
        )

        assert results.count(True) == 1
        winner = refs[results.index(True)]
        stored = await store.get(order.id)
        assert stored.status == OrderStatus.DEPOSITED.value
        assert stored.deposit_tx_ref == winner

    @pytest.mark.asyncio
    async def test_concurrent_same_tx_for_many_orders(self, store, make_order):
        """One transaction raced onto several orders lands on exactly one."""
        orders = [await make_order() for _ in range(5)]

        results = await asyncio.gather(
            *(store.try_mark_deposited(o.id, "tx-contested", now=T0) for o in orders)
        )

        assert results.count(True) == 1
        assert await store.find_attributed(["tx-contested", "tx-other"]) == {"tx-contested"}


class TestSettlementTransitions:
    """Tests for deposited -> processing -> completed."""

    @pytest.mark.asyncio
    async def test_processing_requires_deposited(self, store, make_order):
        order = await make_order()

        assert await store.try_mark_processing(order.id, now=T0) is False
        assert await _status(store, order.id) is OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_concurrent_processing_single_winner(self, store, make_order):
        order = await make_order()
        await store.try_mark_deposited(order.id, "tx-1", now=T0)

        results = await asyncio.gather(
            *(store.try_mark_processing(order.id, now=T0) for _ in range(10))
        )

        assert results.count(True) == 1
        assert await _status(store, order.id) is OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_processing_never_claimed_twice(self, store, make_order):
        order = await make_order()
        await store.try_mark_deposited(order.id, "tx-1", now=T0)

        assert await store.try_mark_processing(order.id, now=T0) is True
        for _ in range(3):
            assert await store.try_mark_processing(order.id, now=T0) is False

    @pytest.mark.asyncio
    async def test_mark_completed(self, store, make_order):
        order = await make_order()
        await store.try_mark_deposited(order.id, "tx-in", now=T0)
        await store.try_mark_processing(order.id, now=T0)
        await store.record_settlement_error(order.id, "first attempt timed out")

        await store.mark_completed(order.id, "tx-out", now=T0)

        stored = await store.get(order.id)
        assert stored.status == OrderStatus.COMPLETED.value
        assert stored.output_tx_ref == "tx-out"
        assert stored.settlement_error is None

    @pytest.mark.asyncio
    async def test_mark_completed_outside_processing_raises(self, store, make_order):
        order = await make_order()
        await store.try_mark_deposited(order.id, "tx-in", now=T0)

        with pytest.raises(OrderStateError):
            await store.mark_completed(order.id, "tx-out", now=T0)

        assert await _status(store, order.id) is OrderStatus.DEPOSITED

    @pytest.mark.asyncio
    async def test_settlement_error_truncated(self, store, make_order):
        order = await make_order()
        await store.try_mark_deposited(order.id, "tx-in", now=T0)
        await store.try_mark_processing(order.id, now=T0)

        await store.record_settlement_error(order.id, "x" * 5000)

        stored = await store.get(order.id)
        assert len(stored.settlement_error) == 2000


class TestExpiry:
    """Tests for pending -> expired."""

    @pytest.mark.asyncio
    async def test_expire_stale_only_touches_pending_past_deadline(self, store, make_order):
        stale = await make_order(expires_in=5)
        fresh = await make_order(expires_in=1800)
        paid = await make_order(expires_in=5)
        await store.try_mark_deposited(paid.id, "tx-paid", now=T0)

        expired = await store.expire_stale(now=T0 + timedelta(seconds=10))

        assert expired == 1
        assert await _status(store, stale.id) is OrderStatus.EXPIRED
        assert await _status(store, fresh.id) is OrderStatus.PENDING
        assert await _status(store, paid.id) is OrderStatus.DEPOSITED

    @pytest.mark.asyncio
    async def test_expiry_boundary_is_inclusive(self, store, make_order):
        order = await make_order(expires_in=5)

        assert await store.expire_stale(now=T0 + timedelta(seconds=5)) == 1
        assert await _status(store, order.id) is OrderStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_expired_order_never_deposited(self, store, make_order):
        order = await make_order(expires_in=5)
        await store.expire_stale(now=T0 + timedelta(seconds=10))

        late = T0 + timedelta(seconds=11)
        assert await store.try_mark_deposited(order.id, "tx-late", now=late) is False

        stored = await store.get(order.id)
        assert stored.status == OrderStatus.EXPIRED.value
        assert stored.deposit_tx_ref is None

    @pytest.mark.asyncio
    async def test_expire_stale_is_idempotent(self, store, make_order):
        await make_order(expires_in=5)

        assert await store.expire_stale(now=T0 + timedelta(seconds=10)) == 1
        assert await store.expire_stale(now=T0 + timedelta(seconds=20)) == 0


class TestMonotonicStatus:
    """Status only ever moves forward along the lifecycle."""

    @pytest.mark.asyncio
    async def test_no_transition_goes_backwards(self, store, make_order):
        order = await make_order(expires_in=60)
        seen = [await _status(store, order.id)]

        attempts = [
            store.try_mark_processing(order.id, now=T0),
            store.try_mark_deposited(order.id, "tx-1", now=T0),
            store.try_mark_deposited(order.id, "tx-2", now=T0),
            store.expire_stale(now=T0 + timedelta(seconds=120)),
            store.try_mark_processing(order.id, now=T0),
            store.try_mark_deposited(order.id, "tx-3", now=T0),
            store.mark_completed(order.id, "tx-out", now=T0),
            store.try_mark_processing(order.id, now=T0),
            store.expire_stale(now=T0 + timedelta(seconds=240)),
        ]
        for attempt in attempts:
            await attempt
            seen.append(await _status(store, order.id))

        ranks = [STATUS_RANK[s] for s in seen]
        assert ranks == sorted(ranks)
        assert seen[-1] is OrderStatus.COMPLETED
        assert OrderStatus.EXPIRED not in seen


class TestAttention:
    """Tests for the operator attention listing."""

    @pytest.mark.asyncio
    async def test_failed_and_stuck_orders_listed(self, store, make_order):
        failed = await make_order()
        stuck = await make_order()
        healthy = await make_order()
        for order in (failed, stuck, healthy):
            await store.try_mark_deposited(order.id, f"tx-{order.id}", now=T0)
        await store.try_mark_processing(failed.id, now=T0 + timedelta(seconds=50))
        await store.record_settlement_error(failed.id, "rpc unreachable")
        await store.try_mark_processing(stuck.id, now=T0)
        await store.try_mark_processing(healthy.id, now=T0 + timedelta(seconds=55))

        attention = await store.list_needing_attention(
            now=T0 + timedelta(seconds=60), stuck_after=timedelta(seconds=30)
        )

        assert {o.id for o in attention} == {failed.id, stuck.id}

    @pytest.mark.asyncio
    async def test_deposited_past_expiry_listed(self, store, make_order):
        order = await make_order(expires_in=5)
        await store.try_mark_deposited(order.id, "tx-1", now=T0)

        attention = await store.list_needing_attention(now=T0 + timedelta(seconds=10))

        assert [o.id for o in attention] == [order.id]


class TestDatabaseUrl:
    """Tests for the engine URL normalisation."""

    def test_plain_sqlite_uses_aiosqlite(self):
        assert async_database_url("sqlite:///./data/x.db") == "sqlite+aiosqlite:///./data/x.db"

    @pytest.mark.parametrize(
        "url",
        ["sqlite+aiosqlite:///./data/x.db", "postgresql+asyncpg://u:p@db/swapgate"],
    )
    def test_async_urls_unchanged(self, url):
        assert async_database_url(url) == url
