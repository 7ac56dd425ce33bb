"""Admin API endpoints (token-protected)."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from swapgate.config import get_settings
from swapgate.orders.factory import get_store
from swapgate.orders.models import Order
from swapgate.utils.clock import as_utc

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access (dev mode).
    """
    settings = get_settings()

    if not settings.admin_token:
        return True

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


class AttentionOrder(BaseModel):
    """An order an operator has to look at."""

    id: str
    direction: str
    status: str
    requested_amount: Decimal
    output_amount: Decimal
    recipient_address: str
    deposit_tx_ref: Optional[str] = None
    settlement_error: Optional[str] = None
    processing_at: Optional[datetime] = None
    expires_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "AttentionOrder":
        return cls(
            id=order.id,
            direction=order.direction,
            status=order.status,
            requested_amount=order.requested_amount,
            output_amount=order.output_amount,
            recipient_address=order.recipient_address,
            deposit_tx_ref=order.deposit_tx_ref,
            settlement_error=order.settlement_error,
            processing_at=as_utc(order.processing_at),
            expires_at=as_utc(order.expires_at),
        )


class OrderStats(BaseModel):
    """Order counts per status."""

    total: int
    by_status: dict[str, int]
    dry_run: bool


@router.get("/orders/attention", response_model=list[AttentionOrder])
async def list_attention(_: bool = Depends(require_admin_token)) -> list[AttentionOrder]:
    """Orders stuck in processing or deposited past their expiry."""
    settings = get_settings()
    orders = await get_store().list_needing_attention(
        stuck_after=timedelta(seconds=settings.stuck_after_seconds)
    )
    return [AttentionOrder.from_order(order) for order in orders]


@router.get("/stats", response_model=OrderStats)
async def get_stats(_: bool = Depends(require_admin_token)) -> OrderStats:
    """Order counts per status."""
    counts = await get_store().count_by_status()
    return OrderStats(
        total=sum(counts.values()),
        by_status=counts,
        dry_run=get_settings().dry_run,
    )
