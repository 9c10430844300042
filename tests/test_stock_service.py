"""Tests for fulfillment.services.stock_service."""
import uuid

import pytest
from sqlalchemy import select

from fulfillment.core.exceptions import ReferenceNotFoundError
from fulfillment.models.inventory import StockRow
from fulfillment.services.stock_service import StockService


class TestLoadStock:
    async def test_creates_available_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()

        rows = await StockService(db).load_stock(van.id, [(product.id, 7)])

        assert len(rows) == 1
        assert rows[0].amount == 7
        assert rows[0].order_item_id is None

    async def test_increments_existing_available_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        existing = await seed.stock(van, product, 5)

        rows = await StockService(db).load_stock(van.id, [(product.id, 3), (product.id, 2)])

        assert [r.id for r in rows] == [existing.id]
        assert existing.amount == 10

    async def test_reserved_rows_are_not_topped_up(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        order = await seed.order((product, 2))
        reserved = await seed.stock(van, product, 2, order_item=order.items[0])

        rows = await StockService(db).load_stock(van.id, [(product.id, 4)])

        assert rows[0].id != reserved.id
        assert reserved.amount == 2

    async def test_rejects_non_positive_amount(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        with pytest.raises(ValueError):
            await StockService(db).load_stock(van.id, [(product.id, 0)])

    async def test_unknown_inventory(self, db, seed):
        product = await seed.product()
        with pytest.raises(ReferenceNotFoundError):
            await StockService(db).load_stock(uuid.uuid4(), [(product.id, 1)])

    async def test_unknown_product(self, db, seed):
        van = await seed.van()
        with pytest.raises(ReferenceNotFoundError):
            await StockService(db).load_stock(van.id, [(uuid.uuid4(), 1)])


class TestFillLevel:
    async def test_empty_inventory(self, db, seed):
        van = await seed.van(capacity_cc=10_000)
        assert await StockService(db).fill_level(van) == 0.0

    async def test_counts_available_and_reserved_rows(self, db, seed):
        product = await seed.product(volume_cc=1000)
        van = await seed.van(capacity_cc=10_000)
        order = await seed.order((product, 2))
        await seed.stock(van, product, 3)
        await seed.stock(van, product, 2, order_item=order.items[0])

        assert await StockService(db).fill_level(van) == pytest.approx(0.5)

    async def test_default_volume_for_unknown_products(self, db, seed):
        product = await seed.product(volume_cc=None)
        van = await seed.van(capacity_cc=4_000)
        await seed.stock(van, product, 1)

        assert await StockService(db).fill_level(van) == pytest.approx(0.25)

    async def test_clamped_to_one(self, db, seed):
        product = await seed.product(volume_cc=5000)
        van = await seed.van(capacity_cc=10_000)
        await seed.stock(van, product, 3)

        assert await StockService(db).fill_level(van) == 1.0


class TestReservations:
    async def test_lists_rows_of_order_items_only(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        order = await seed.order((product, 5))
        other = await seed.order((product, 1))
        await seed.stock(van, product, 9)
        mine = await seed.stock(van, product, 3, order_item=order.items[0])
        also_mine = await seed.stock(warehouse, product, 2, order_item=order.items[0])
        await seed.stock(van, product, 1, order_item=other.items[0])

        rows = await StockService(db).reservations_for_order(order.id)

        assert {r.id for r in rows} == {mine.id, also_mine.id}


async def rows_at(db, inventory, product):
    result = await db.execute(
        select(StockRow).where(
            StockRow.inventory_id == inventory.id,
            StockRow.product_id == product.id,
        )
    )
    return list(result.scalars().all())


class TestUnloadStock:
    async def test_full_unload_rehomes_the_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        row = await seed.stock(van, product, 6)

        (moved,) = await StockService(db).unload_stock(van.id, [(product.id, 6)], warehouse.id)

        assert moved.id == row.id
        assert row.inventory_id == warehouse.id
        assert row.amount == 6
        assert await rows_at(db, van, product) == []

    async def test_partial_unload_tops_up_destination_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        source = await seed.stock(van, product, 6)
        existing = await seed.stock(warehouse, product, 10)

        (moved,) = await StockService(db).unload_stock(van.id, [(product.id, 4)], warehouse.id)

        assert moved.id == existing.id
        assert existing.amount == 14
        assert source.amount == 2
        assert len(await rows_at(db, warehouse, product)) == 1

    async def test_partial_unload_creates_destination_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        source = await seed.stock(van, product, 6)

        (moved,) = await StockService(db).unload_stock(van.id, [(product.id, 1)], warehouse.id)

        assert moved.id != source.id
        assert moved.inventory_id == warehouse.id
        assert moved.amount == 1
        assert moved.order_item_id is None
        assert source.amount == 5

    async def test_full_unload_merges_into_existing_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        source = await seed.stock(van, product, 3)
        existing = await seed.stock(warehouse, product, 2)

        await StockService(db).unload_stock(van.id, [(product.id, 3)], warehouse.id)

        assert existing.amount == 5
        assert source.amount == 0
        assert len(await rows_at(db, warehouse, product)) == 1

    async def test_reserved_units_keep_their_order_item(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        other_van = await seed.van()
        order = await seed.order((product, 4))
        await seed.stock(van, product, 9)
        await seed.stock(van, product, 4, order_item=order.items[0])

        (moved,) = await StockService(db).unload_stock(
            van.id, [(product.id, 3)], other_van.id, order_id=order.id
        )

        assert moved.inventory_id == other_van.id
        assert moved.order_item_id == order.items[0].id
        assert moved.amount == 3
        available = [r for r in await rows_at(db, van, product) if r.order_item_id is None]
        assert available[0].amount == 9

    async def test_reserved_units_delivered_to_client(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        order = await seed.order((product, 4))
        reserved = await seed.stock(van, product, 4, order_item=order.items[0])

        (delivered,) = await StockService(db).unload_stock(
            van.id, [(product.id, 4)], order_id=order.id
        )

        assert delivered.id == reserved.id
        assert reserved.amount == 0
        assert reserved.inventory_id == van.id

    async def test_available_stock_cannot_go_to_client(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        row = await seed.stock(van, product, 4)

        with pytest.raises(ValueError):
            await StockService(db).unload_stock(van.id, [(product.id, 1)])
        assert row.amount == 4

    async def test_transport_amount_above_row_amount(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        row = await seed.stock(van, product, 4)

        with pytest.raises(ValueError):
            await StockService(db).unload_stock(van.id, [(product.id, 5)], warehouse.id)
        assert row.amount == 4
        assert row.inventory_id == van.id

    async def test_no_matching_source_row(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        order = await seed.order((product, 1))
        await seed.stock(van, product, 4)

        with pytest.raises(ReferenceNotFoundError):
            await StockService(db).unload_stock(
                van.id, [(product.id, 1)], warehouse.id, order_id=order.id
            )

    async def test_same_source_and_destination(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        await seed.stock(van, product, 4)

        with pytest.raises(ValueError):
            await StockService(db).unload_stock(van.id, [(product.id, 1)], van.id)


class TestInventoryListings:
    async def test_orders_with_reserved_units_in_inventory(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        warehouse = await seed.warehouse()
        here = await seed.order((product, 2))
        elsewhere = await seed.order((product, 2))
        await seed.order((product, 2))
        await seed.stock(van, product, 5)
        await seed.stock(van, product, 2, order_item=here.items[0])
        await seed.stock(warehouse, product, 2, order_item=elsewhere.items[0])

        orders = await StockService(db).orders_for_inventory(van.id)

        assert [o.id for o in orders] == [here.id]

    async def test_available_products_with_totals(self, db, seed):
        first = await seed.product()
        second = await seed.product()
        empty = await seed.product()
        van = await seed.van()
        order = await seed.order((first, 3))
        await seed.stock(van, first, 5)
        await seed.stock(van, first, 3, order_item=order.items[0])
        await seed.stock(van, second, 1)
        await seed.stock(van, empty, 0)

        products = await StockService(db).products_for_inventory(van.id)

        assert [(p.id, amount) for p, amount in products] == [(first.id, 5), (second.id, 1)]

    async def test_products_reserved_for_order(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        order = await seed.order((product, 3))
        await seed.stock(van, product, 5)
        await seed.stock(van, product, 3, order_item=order.items[0])

        products = await StockService(db).products_for_inventory(van.id, order.id)

        assert [(p.id, amount) for p, amount in products] == [(product.id, 3)]

    async def test_unknown_inventory(self, db):
        with pytest.raises(ReferenceNotFoundError):
            await StockService(db).orders_for_inventory(uuid.uuid4())
