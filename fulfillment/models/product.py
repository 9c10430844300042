"""Product model (catalog management lives outside the allocation core)."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base
from fulfillment.db_types import UUIDType, UTCDateTime, utcnow


class Product(Base):
    """Sellable product. Only the unit volume matters to allocation."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    volume_cc: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 3),
        nullable=True,
        comment="Unit volume in cubic centimetres"
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    def __repr__(self) -> str:
        return f"<Product(sku='{self.sku}')>"
