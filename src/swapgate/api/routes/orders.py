"""Order creation, status and manual deposit endpoints."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AliasChoices, BaseModel, Field, field_validator

from swapgate.chains import Direction
from swapgate.config import get_settings
from swapgate.orders.factory import build_order_service
from swapgate.orders.models import Order
from swapgate.orders.service import (
    CustodyAddressMissingError,
    DepositConfirmationError,
    OrderService,
)
from swapgate.orders.store import OrderNotFoundError
from swapgate.quotes import QuoteError
from swapgate.utils.clock import as_utc

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_AMOUNT = Decimal("1000000000")


class CreateOrderRequest(BaseModel):
    """Request to open a swap order."""

    direction: Direction
    amount: Decimal = Field(..., gt=0, description="Amount of the source asset to deposit")
    recipient_address: str = Field(
        ...,
        min_length=10,
        max_length=120,
        validation_alias=AliasChoices("recipient_address", "recipientAddress"),
        description="Where the destination asset is sent",
    )

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Reject absurd amounts."""
        if v > MAX_AMOUNT:
            raise ValueError("Amount exceeds maximum limit")
        return v

    @field_validator("recipient_address")
    @classmethod
    def strip_address(cls, v: str) -> str:
        return v.strip()


class CreateOrderResponse(BaseModel):
    """What the user needs to make the deposit."""

    order_id: str
    deposit_address: str
    requested_amount: Decimal
    output_amount: Decimal
    expires_at: datetime


class OrderResponse(BaseModel):
    """Public view of an order."""

    id: str
    direction: Direction
    requested_amount: Decimal
    output_amount: Decimal
    recipient_address: str
    deposit_address: str
    status: str
    deposit_tx_ref: Optional[str] = None
    output_tx_ref: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            direction=Direction(order.direction),
            requested_amount=order.requested_amount,
            output_amount=order.output_amount,
            recipient_address=order.recipient_address,
            deposit_address=order.deposit_address,
            status=order.status,
            deposit_tx_ref=order.deposit_tx_ref,
            output_tx_ref=order.output_tx_ref,
            created_at=as_utc(order.created_at),
            expires_at=as_utc(order.expires_at),
            completed_at=as_utc(order.completed_at),
        )


class ManualDepositRequest(BaseModel):
    """Optional body for a manual deposit confirmation."""

    deposit_tx_ref: Optional[str] = Field(None, min_length=4, max_length=128)


class ManualDepositResponse(BaseModel):
    success: bool
    message: str
    deposit_tx_ref: str


def get_order_service() -> OrderService:
    """Order service dependency."""
    return build_order_service()


@router.post("/orders", response_model=CreateOrderResponse)
async def create_order(
    request: CreateOrderRequest,
    service: OrderService = Depends(get_order_service),
) -> CreateOrderResponse:
    """Open a pending swap order and return the deposit instructions."""
    try:
        created = await service.create_order(
            request.direction, request.amount, request.recipient_address
        )
    except QuoteError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except CustodyAddressMissingError as e:
        logger.error(f"Cannot accept order: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return CreateOrderResponse(
        order_id=created.order_id,
        deposit_address=created.deposit_address,
        requested_amount=created.requested_amount,
        output_amount=created.output_amount,
        expires_at=created.expires_at,
    )


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Current state of an order."""
    try:
        order = await service.get_order(order_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderResponse.from_order(order)


@router.post("/orders/{order_id}/test-deposit", response_model=ManualDepositResponse)
async def test_deposit(
    order_id: str,
    request: Optional[ManualDepositRequest] = None,
    service: OrderService = Depends(get_order_service),
) -> ManualDepositResponse:
    """Mark a pending order as deposited without a chain observation.

    Only available when ALLOW_TEST_DEPOSITS is enabled.
    """
    if not get_settings().allow_test_deposits:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    try:
        tx_ref = await service.confirm_deposit(
            order_id, request.deposit_tx_ref if request else None
        )
    except OrderNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    except DepositConfirmationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ManualDepositResponse(
        success=True,
        message="Order marked as deposited. Settlement will run on the next tick.",
        deposit_tx_ref=tx_ref,
    )
