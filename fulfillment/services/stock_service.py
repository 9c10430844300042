"""
Stock Service.

Stock-level operations around the allocation engine:
- Loading available stock into an inventory
- Unloading stock to another inventory or to the client
- Orders and products held by an inventory
- Fill level (occupied volume fraction) of an inventory, used for vans
- Reserved rows of an order
"""
import logging
import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.core.exceptions import ReferenceNotFoundError
from fulfillment.models.inventory import Inventory, StockRow
from fulfillment.models.order import Order, OrderItem
from fulfillment.models.product import Product

logger = logging.getLogger(__name__)


class StockService:
    """Service for stock rows and inventory fill levels."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_inventory(self, inventory_id: uuid.UUID) -> Inventory:
        inventory = await self.db.get(Inventory, inventory_id)
        if inventory is None:
            raise ReferenceNotFoundError(f"Inventory not found: {inventory_id}")
        return inventory

    async def fill_level(self, inventory: Inventory) -> float:
        """
        Occupied volume of ``inventory`` as a fraction of its capacity.

        Counts every row on the inventory, available and reserved, since
        reserved units still take up cargo space. Clamped to [0, 1].
        """
        capacity = float(inventory.capacity_cc or 0)
        if capacity <= 0:
            return 0.0

        default_volume = settings.ALLOCATION_DEFAULT_UNIT_VOLUME_CC
        result = await self.db.execute(
            select(
                func.coalesce(
                    func.sum(
                        case((Product.volume_cc > 0, Product.volume_cc), else_=default_volume)
                        * StockRow.amount
                    ),
                    0,
                )
            )
            .join(Product, Product.id == StockRow.product_id)
            .where(StockRow.inventory_id == inventory.id)
        )
        used_volume = float(result.scalar() or 0)
        return max(0.0, min(1.0, used_volume / capacity))

    async def load_stock(
        self,
        inventory_id: uuid.UUID,
        items: Sequence[Tuple[uuid.UUID, int]],
    ) -> List[StockRow]:
        """
        Add available units to an inventory.

        Increments the existing available row for each product or creates it;
        available rows are never duplicated.
        """
        inventory = await self.get_inventory(inventory_id)

        rows: Dict[uuid.UUID, StockRow] = {}
        for product_id, amount in items:
            if amount <= 0:
                raise ValueError(f"Load amount must be positive, got {amount} for product {product_id}")

            product = await self.db.get(Product, product_id)
            if product is None:
                raise ReferenceNotFoundError(f"Product not found: {product_id}")

            row = rows.get(product_id)
            if row is None:
                result = await self.db.execute(
                    select(StockRow).where(
                        StockRow.inventory_id == inventory.id,
                        StockRow.product_id == product_id,
                        StockRow.order_item_id.is_(None),
                    )
                )
                row = result.scalars().first()

            if row is None:
                row = StockRow(
                    inventory_id=inventory.id,
                    product_id=product_id,
                    order_item_id=None,
                    amount=0,
                )
                self.db.add(row)

            row.amount += amount
            rows[product_id] = row

        await self.db.flush()
        logger.info(f"Loaded {sum(a for _, a in items)} unit(s) into inventory {inventory.code}")
        return list(rows.values())

    async def reservations_for_order(self, order_id: uuid.UUID) -> List[StockRow]:
        """Reserved stock rows of every item of an order."""
        result = await self.db.execute(
            select(StockRow)
            .join(OrderItem, OrderItem.id == StockRow.order_item_id)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.line_number, StockRow.created_at)
        )
        return list(result.scalars().all())

    async def unload_stock(
        self,
        source_inventory_id: uuid.UUID,
        items: Sequence[Tuple[uuid.UUID, int]],
        destination_inventory_id: Optional[uuid.UUID] = None,
        order_id: Optional[uuid.UUID] = None,
    ) -> List[StockRow]:
        """
        Move units out of an inventory, into another one or to the client.

        Without ``order_id`` the available rows are unloaded, otherwise the
        rows reserved for that order. ``destination_inventory_id`` of None
        means delivery to the client, which is only allowed for reserved
        stock and takes the units out of the system. A full unload re-homes
        the row; a partial one splits it into the destination's matching row.

        Returns the rows that received the units, or the drained source rows
        for client deliveries.
        """
        source = await self.get_inventory(source_inventory_id)
        destination = None
        if destination_inventory_id is not None:
            destination = await self.get_inventory(destination_inventory_id)
            if destination.id == source.id:
                raise ValueError("Source and destination inventory are the same")
        elif order_id is None:
            raise ValueError("Available stock cannot be delivered to a client without an order")

        touched: Dict[uuid.UUID, StockRow] = {}
        moved = 0
        for product_id, amount in items:
            if amount <= 0:
                raise ValueError(f"Unload amount must be positive, got {amount} for product {product_id}")

            row = await self._unload_source_row(source, product_id, order_id)
            if amount > row.amount:
                raise ValueError(
                    f"Transport amount ({amount}) exceeds stock ({row.amount}) "
                    f"for product {product_id} in inventory {source.code}"
                )

            if destination is None:
                row.amount -= amount
                target = row
            else:
                target = await self._find_row(destination.id, product_id, row.order_item_id)
                if target is None and amount == row.amount:
                    row.inventory_id = destination.id
                    row.inventory = destination
                    target = row
                else:
                    if target is None:
                        target = StockRow(
                            inventory_id=destination.id,
                            product_id=product_id,
                            order_item_id=row.order_item_id,
                            amount=0,
                        )
                        self.db.add(target)
                    row.amount -= amount
                    target.amount += amount

            # Next item may look up the same rows
            await self.db.flush()
            touched[target.id] = target
            moved += amount

        where = destination.code if destination is not None else "client"
        logger.info(f"Unloaded {moved} unit(s) from inventory {source.code} to {where}")
        return list(touched.values())

    async def _unload_source_row(
        self,
        source: Inventory,
        product_id: uuid.UUID,
        order_id: Optional[uuid.UUID],
    ) -> StockRow:
        query = select(StockRow).where(
            StockRow.inventory_id == source.id,
            StockRow.product_id == product_id,
            StockRow.amount > 0,
        )
        if order_id is None:
            query = query.where(StockRow.order_item_id.is_(None))
        else:
            query = (
                query.join(OrderItem, OrderItem.id == StockRow.order_item_id)
                .where(OrderItem.order_id == order_id)
                .order_by(OrderItem.line_number)
            )

        row = (await self.db.execute(query.with_for_update())).scalars().first()
        if row is None:
            scope = "available" if order_id is None else f"order {order_id}"
            raise ReferenceNotFoundError(
                f"No {scope} stock of product {product_id} in inventory {source.code}"
            )
        return row

    async def _find_row(
        self,
        inventory_id: uuid.UUID,
        product_id: uuid.UUID,
        order_item_id: Optional[uuid.UUID],
    ) -> Optional[StockRow]:
        query = select(StockRow).where(
            StockRow.inventory_id == inventory_id,
            StockRow.product_id == product_id,
        )
        if order_item_id is None:
            query = query.where(StockRow.order_item_id.is_(None))
        else:
            query = query.where(StockRow.order_item_id == order_item_id)
        return (await self.db.execute(query)).scalars().first()

    async def orders_for_inventory(self, inventory_id: uuid.UUID) -> List[Order]:
        """Orders with reserved units currently held by the inventory."""
        inventory = await self.get_inventory(inventory_id)
        result = await self.db.execute(
            select(Order)
            .where(
                Order.id.in_(
                    select(OrderItem.order_id)
                    .join(StockRow, StockRow.order_item_id == OrderItem.id)
                    .where(StockRow.inventory_id == inventory.id, StockRow.amount > 0)
                )
            )
            .order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def products_for_inventory(
        self,
        inventory_id: uuid.UUID,
        order_id: Optional[uuid.UUID] = None,
    ) -> List[Tuple[Product, int]]:
        """
        Products held by the inventory with their unit totals.

        Available stock when ``order_id`` is None, otherwise the stock
        reserved for that order. Empty rows are left out.
        """
        inventory = await self.get_inventory(inventory_id)
        query = (
            select(Product, func.sum(StockRow.amount))
            .join(StockRow, StockRow.product_id == Product.id)
            .where(StockRow.inventory_id == inventory.id, StockRow.amount > 0)
        )
        if order_id is None:
            query = query.where(StockRow.order_item_id.is_(None))
        else:
            query = query.join(OrderItem, OrderItem.id == StockRow.order_item_id).where(
                OrderItem.order_id == order_id
            )
        result = await self.db.execute(query.group_by(Product.id).order_by(Product.sku))
        return [(product, int(total)) for product, total in result.all()]
