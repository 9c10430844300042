"""Stock movement model: planned or completed relocation of a quantity."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, ForeignKey, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType, UTCDateTime, utcnow

if TYPE_CHECKING:
    from fulfillment.models.inventory import Inventory, StockRow


class MovementType(str, Enum):
    """Kinds of movement."""
    LOAD = "LOAD"           # warehouse/store -> van
    UNLOAD = "UNLOAD"       # van -> warehouse or client
    TRANSFER = "TRANSFER"   # warehouse -> warehouse, other internal moves


class MovementStatus(str, Enum):
    """Movement lifecycle."""
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class Movement(Base):
    """
    Relocation of the units held by a stock row.

    A NULL source means the client or an unknown origin, a NULL destination
    means the client.
    """
    __tablename__ = "movements"
    __table_args__ = (
        Index("ix_movement_from_status_at", "from_inventory_id", "movement_status", "move_at"),
        Index("ix_movement_to_status_at", "to_inventory_id", "movement_status", "move_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    stock_row_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("stock_rows.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    from_inventory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("inventories.id", ondelete="SET NULL"),
        nullable=True
    )
    to_inventory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("inventories.id", ondelete="SET NULL"),
        nullable=True
    )

    movement_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="LOAD, UNLOAD, TRANSFER"
    )
    movement_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MovementStatus.PLANNED.value,
        comment="PLANNED, IN_PROGRESS, DONE, CANCELLED"
    )
    move_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    estimated_volume_cc: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)

    # Driver / staff; user management lives outside this service
    assigned_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    stock_row: Mapped["StockRow"] = relationship("StockRow", lazy="selectin")
    from_inventory: Mapped[Optional["Inventory"]] = relationship(
        "Inventory", foreign_keys=[from_inventory_id], lazy="selectin"
    )
    to_inventory: Mapped[Optional["Inventory"]] = relationship(
        "Inventory", foreign_keys=[to_inventory_id], lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Movement({self.movement_type} {self.movement_status} at {self.move_at})>"
