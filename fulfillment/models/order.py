"""Customer order models as seen by the allocation engine."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List

from sqlalchemy import String, ForeignKey, Integer, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType, UTCDateTime, utcnow

if TYPE_CHECKING:
    from fulfillment.models.product import Product
    from fulfillment.models.inventory import StockRow


class OrderStatus(str, Enum):
    """Order status enumeration."""
    NEW = "NEW"                 # Order received
    CONFIRMED = "CONFIRMED"     # Ready for allocation
    ALLOCATED = "ALLOCATED"     # Stock reserved and movements planned
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(Base):
    """Customer order delivered to the client's coordinates."""
    __tablename__ = "fulfillment_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    order_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(30),
        default=OrderStatus.NEW.value,
        nullable=False,
        index=True,
        comment="NEW, CONFIRMED, ALLOCATED, DELIVERED, CANCELLED"
    )

    delivery_location: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 6), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(10, 6), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.line_number",
    )

    def __repr__(self) -> str:
        return f"<Order(order_number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """One requested product line of an order."""
    __tablename__ = "fulfillment_order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_order_item_quantity_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("fulfillment_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product"] = relationship("Product", lazy="selectin")
    stock_rows: Mapped[List["StockRow"]] = relationship(
        "StockRow",
        back_populates="order_item",
    )

    def __repr__(self) -> str:
        return f"<OrderItem(order={self.order_id}, product={self.product_id}, qty={self.quantity})>"
