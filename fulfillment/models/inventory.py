"""Inventory and stock row models.

An inventory is any physical stock-holding unit: a fixed warehouse, a local
store or a moving van. Stock rows record how many units of a product sit in
an inventory. A row without an order item is available stock; a row linked
to an order item is reserved for that item.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, ForeignKey, Integer, Numeric
from sqlalchemy import UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType, UTCDateTime, utcnow

if TYPE_CHECKING:
    from fulfillment.models.product import Product
    from fulfillment.models.order import OrderItem


class InventoryType(str, Enum):
    """Types of stock-holding units."""
    WAREHOUSE = "WAREHOUSE"
    VAN = "VAN"
    LOCAL_STORE = "LOCAL_STORE"


class Inventory(Base):
    """Warehouse, local store or van with a location and a cargo capacity."""
    __tablename__ = "inventories"
    __table_args__ = (
        Index("ix_inventory_type_active", "inventory_type", "is_active"),
        CheckConstraint("capacity_cc > 0", name="ck_inventory_capacity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    inventory_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="WAREHOUSE, VAN, LOCAL_STORE"
    )
    location: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Human-readable location description"
    )

    # Vans use these as their home position
    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 6), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(10, 6), nullable=False)

    capacity_cc: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        comment="Volumetric capacity in cubic centimetres"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    @property
    def is_van(self) -> bool:
        return self.inventory_type == InventoryType.VAN.value

    def __repr__(self) -> str:
        return f"<Inventory(code='{self.code}', type='{self.inventory_type}')>"


class StockRow(Base):
    """Units of one product held by one inventory, optionally reserved."""
    __tablename__ = "stock_rows"
    __table_args__ = (
        UniqueConstraint(
            "inventory_id", "product_id", "order_item_id",
            name="uq_stock_row_inventory_product_item"
        ),
        Index("ix_stock_row_product_available", "product_id", "order_item_id"),
        CheckConstraint("amount >= 0", name="ck_stock_row_amount_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    inventory_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("inventories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    # NULL = available stock; set = reserved for that order item
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("fulfillment_order_items.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    inventory: Mapped["Inventory"] = relationship("Inventory", lazy="selectin")
    product: Mapped["Product"] = relationship("Product", lazy="selectin")
    order_item: Mapped[Optional["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="stock_rows",
    )

    def __repr__(self) -> str:
        return f"<StockRow(inventory={self.inventory_id}, product={self.product_id}, amount={self.amount})>"
