"""Operator command line.

Usage:
    python -m swapgate.runner run                # coordinator loop, no API
    python -m swapgate.runner tick               # one coordinator pass
    python -m swapgate.runner confirm-deposit ORDER_ID [--ref TX]
    python -m swapgate.runner attention          # orders needing manual review

Configuration comes from the environment / .env (see swapgate.config).
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import timedelta
from typing import Optional

from swapgate.config import get_settings
from swapgate.coordinator.factory import build_coordinator, build_scheduler
from swapgate.orders.database import close_db, init_db
from swapgate.orders.factory import build_order_service, get_store
from swapgate.orders.service import DepositConfirmationError
from swapgate.orders.store import OrderNotFoundError

logger = logging.getLogger(__name__)


async def run_coordinator(once: bool = False) -> int:
    """Run the coordinator loop (or a single tick)."""
    coordinator = build_coordinator()

    if once:
        report = await coordinator.tick()
        print(f"Tick: {report}")
        return 0

    scheduler = build_scheduler(coordinator)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)

    await scheduler.run()
    return 0


async def confirm_deposit(order_id: str, tx_ref: Optional[str]) -> int:
    """Manually mark a pending order as deposited."""
    service = build_order_service()
    try:
        recorded = await service.confirm_deposit(order_id, tx_ref)
    except OrderNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except DepositConfirmationError as e:
        print(f"Refused: {e}", file=sys.stderr)
        return 2

    print(f"Order {order_id} marked deposited (ref {recorded})")
    return 0


async def show_attention() -> int:
    """Print orders that need an operator."""
    settings = get_settings()
    orders = await get_store().list_needing_attention(
        stuck_after=timedelta(seconds=settings.stuck_after_seconds)
    )
    if not orders:
        print("No orders need attention")
        return 0

    for order in orders:
        print(
            f"{order.id}  {order.status:<10}  {order.direction:<10}  "
            f"{order.output_amount} -> {order.recipient_address}"
        )
        if order.deposit_tx_ref:
            print(f"    deposit: {order.deposit_tx_ref}")
        if order.settlement_error:
            print(f"    error:   {order.settlement_error}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Swapgate operator tool")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the coordinator loop without the API")
    sub.add_parser("tick", help="Run a single coordinator tick and exit")

    confirm = sub.add_parser("confirm-deposit", help="Mark a pending order as deposited")
    confirm.add_argument("order_id", help="Order id")
    confirm.add_argument("--ref", default=None, help="Deposit transaction reference")

    sub.add_parser("attention", help="List orders needing manual review")
    return parser


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    await init_db()
    try:
        if args.command == "run":
            return await run_coordinator()
        if args.command == "tick":
            return await run_coordinator(once=True)
        if args.command == "confirm-deposit":
            return await confirm_deposit(args.order_id, args.ref)
        return await show_attention()
    finally:
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
