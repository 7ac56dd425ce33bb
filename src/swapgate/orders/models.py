"""SQLAlchemy models for swap orders."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from swapgate.chains import Direction, Network


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class OrderStatus(str, Enum):
    """Status of a swap order.

    pending -> deposited -> processing -> completed
    pending -> expired
    """

    PENDING = "pending"          # Waiting for the user's deposit
    DEPOSITED = "deposited"      # Deposit matched, settlement not started
    PROCESSING = "processing"    # Settlement claimed by exactly one caller
    COMPLETED = "completed"      # Outbound payment sent
    EXPIRED = "expired"          # No deposit before expires_at


class ExactDecimal(TypeDecorator):
    """Decimal stored as its plain string form.

    SQLite keeps NUMERIC columns as binary floats, so a quoted amount would not
    read back as written. The text column round-trips every digit.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


ACTIVE_STATUSES = (OrderStatus.PENDING, OrderStatus.DEPOSITED, OrderStatus.PROCESSING)

# Position along the lifecycle; expired sits beside deposited as the other exit of pending.
STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.DEPOSITED: 1,
    OrderStatus.EXPIRED: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.COMPLETED: 3,
}


class Order(Base):
    """A single custodial swap: one deposit in, one settlement out."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status_expires", "status", "expires_at"),
        Index("ix_orders_deposit_tx_ref", "deposit_tx_ref", unique=True),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    direction: Mapped[Direction] = mapped_column(String(20), nullable=False)
    requested_amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    recipient_address: Mapped[str] = mapped_column(String(255), nullable=False)
    deposit_address: Mapped[str] = mapped_column(String(255), nullable=False)
    output_amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        String(20), default=OrderStatus.PENDING, nullable=False
    )
    deposit_tx_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    output_tx_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Internal bookkeeping
    deposited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    settlement_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def source_network(self) -> Network:
        """Network the deposit is expected on."""
        return Direction(self.direction).source

    @property
    def destination_network(self) -> Network:
        """Network the settlement is sent on."""
        return Direction(self.direction).destination

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.direction} {self.status}>"
