"""Tests for fulfillment.services.candidate_generator (Phase A)."""
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from fulfillment.core.exceptions import RoutingProviderError
from fulfillment.models.movement import Movement, MovementType
from fulfillment.services.allocation_types import (
    CLIENT,
    PATTERN_VAN_TO_CLIENT,
    PATTERN_WAREHOUSE_VAN_CLIENT,
    CandidateMetrics,
    Coordinates,
    InventoryEndpoint,
    PathCandidate,
    StockRowSnapshot,
)
from fulfillment.services.candidate_generator import (
    CandidateGenerator,
    rank_candidates,
    split_penalty,
)
from fulfillment.services.route_overhead import RouteOverheadResolver
from fulfillment.services.working_hours import next_working_instant

from conftest import (
    CLIENT as CLIENT_POINT,
    JEDDAH,
    MONDAY_MORNING,
    NEAR_CLIENT,
    FakeRoutingProvider,
)


def generator_for(db, routing, clock=lambda: MONDAY_MORNING) -> CandidateGenerator:
    resolver = RouteOverheadResolver(db, routing, clock=clock)
    return CandidateGenerator(db, resolver, clock=clock)


def candidate(row_id, score_inputs, feasible=10, amount=10) -> PathCandidate:
    distance_km, travel_time_sec = score_inputs
    return PathCandidate(
        primary_stock=StockRowSnapshot(
            id=row_id,
            inventory_id=uuid.uuid4(),
            product_id=uuid.uuid4(),
            inventory_type="VAN",
            amount=amount,
        ),
        product_id=uuid.uuid4(),
        delivering_van_id=uuid.uuid4(),
        max_feasible_amount=feasible,
        movements=(),
        metrics=CandidateMetrics(distance_km, travel_time_sec, 300.0, 0.0),
        pattern=PATTERN_VAN_TO_CLIENT,
    )


class TestSplitPenalty:
    def test_large_share_has_no_penalty(self):
        assert split_penalty(8, 10) == 0.0

    def test_below_absolute_floor(self):
        assert split_penalty(4, 10) == 1.0

    def test_below_ratio_floor(self):
        assert split_penalty(15, 100) == 1.0

    def test_zero_feasible_has_no_penalty(self):
        assert split_penalty(0, 10) == 0.0


class TestRankCandidates:
    def test_sorted_ascending_by_score(self):
        far = candidate(uuid.uuid4(), (10.0, 1000.0))
        near = candidate(uuid.uuid4(), (1.0, 100.0))
        ranked = rank_candidates([far, near], requested=10)
        assert [c.primary_stock.id for c in ranked] == [near.primary_stock.id, far.primary_stock.id]
        assert ranked[0].provisional_score < ranked[1].provisional_score

    def test_one_candidate_per_stock_row(self):
        row_id = uuid.uuid4()
        ranked = rank_candidates(
            [candidate(row_id, (2.0, 200.0)), candidate(row_id, (1.0, 100.0))],
            requested=10,
        )
        assert len(ranked) == 1
        assert ranked[0].metrics.distance_km == 1.0

    def test_keeps_top_k(self):
        candidates = [candidate(uuid.uuid4(), (float(i), float(i))) for i in range(1, 9)]
        ranked = rank_candidates(candidates, requested=10, limit=5)
        assert len(ranked) == 5
        assert [c.metrics.distance_km for c in ranked] == [1.0, 2.0, 3.0, 4.0, 5.0]

    def test_zero_maxima_do_not_divide_by_zero(self):
        ranked = rank_candidates([candidate(uuid.uuid4(), (0.0, 0.0))], requested=10)
        # handling 300/600 * 0.7
        assert ranked[0].provisional_score == pytest.approx(0.35)

    def test_fragment_penalised(self):
        whole = candidate(uuid.uuid4(), (1.0, 100.0), feasible=10)
        fragment = candidate(uuid.uuid4(), (1.0, 100.0), feasible=2)
        ranked = rank_candidates([fragment, whole], requested=10)
        assert ranked[0].max_feasible_amount == 10
        assert ranked[1].provisional_score - ranked[0].provisional_score == pytest.approx(1.5)


class TestVanToClient:
    async def test_van_holding_enough_yields_single_direct_candidate(self, db, seed, routing):
        product = await seed.product(volume_cc=2000)
        van = await seed.van(at=NEAR_CLIENT, capacity_cc=100_000)
        row = await seed.stock(van, product, 10)
        order = await seed.order((product, 8))

        result = await generator_for(db, routing).generate(order, order.items[0])

        assert result.requested_quantity == 8
        assert len(result.candidates) == 1
        c = result.candidates[0]
        assert c.pattern == PATTERN_VAN_TO_CLIENT
        assert c.max_feasible_amount == 8
        assert c.metrics.pressure == 0.0
        assert c.metrics.handling_time_sec == 300.0
        assert c.primary_stock.id == row.id
        assert c.delivering_van_id == van.id

        (unload,) = c.movements
        assert unload.movement_type == MovementType.UNLOAD
        assert unload.source == InventoryEndpoint(van.id)
        assert unload.destination == CLIENT
        assert unload.to_inventory_id is None
        assert unload.move_at > MONDAY_MORNING

    async def test_feasible_limited_by_row_amount(self, db, seed, routing):
        product = await seed.product(volume_cc=2000)
        van = await seed.van(capacity_cc=100_000)
        await seed.stock(van, product, 3)
        order = await seed.order((product, 8))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert [c.max_feasible_amount for c in result.candidates] == [3]

    async def test_full_van_is_dropped(self, db, seed, routing):
        product = await seed.product(volume_cc=2000)
        van = await seed.van(capacity_cc=20_000)
        await seed.stock(van, product, 10)
        order = await seed.order((product, 5))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert result.candidates == ()

    async def test_van_in_other_city_is_skipped(self, db, seed, routing):
        product = await seed.product()
        van = await seed.van(at=JEDDAH)
        await seed.stock(van, product, 10)
        order = await seed.order((product, 5))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert result.candidates == ()

    async def test_reserved_and_inactive_stock_ignored(self, db, seed, routing):
        product = await seed.product()
        other = await seed.order((product, 2))
        van = await seed.van()
        await seed.stock(van, product, 10, order_item=other.items[0])
        parked = await seed.van(is_active=False)
        await seed.stock(parked, product, 10)
        order = await seed.order((product, 5))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert result.candidates == ()

    async def test_move_at_lands_in_working_hours(self, db, seed, routing):
        # Friday 2026-10-23 10:00 Riyadh
        friday = datetime(2026, 10, 23, 7, 0, tzinfo=timezone.utc)
        product = await seed.product()
        van = await seed.van()
        await seed.stock(van, product, 10)
        order = await seed.order((product, 6))

        result = await generator_for(db, routing, clock=lambda: friday).generate(order, order.items[0])
        (unload,) = result.candidates[0].movements
        assert unload.move_at == datetime(2026, 10, 24, 5, 0, tzinfo=timezone.utc)


class TestWarehouseViaVan:
    async def test_warehouse_stock_routed_through_van(self, db, seed, routing):
        product = await seed.product(volume_cc=2000)
        van = await seed.van(capacity_cc=100_000)
        warehouse = await seed.warehouse()
        row = await seed.stock(warehouse, product, 50)
        order = await seed.order((product, 20))

        result = await generator_for(db, routing).generate(order, order.items[0])

        assert len(result.candidates) == 1
        c = result.candidates[0]
        assert c.pattern == PATTERN_WAREHOUSE_VAN_CLIENT
        assert c.max_feasible_amount == 20
        assert c.primary_stock.id == row.id
        assert c.delivering_van_id == van.id
        assert c.metrics.handling_time_sec == 600.0
        assert c.metrics.pressure == pytest.approx(0.4)

        load, unload = c.movements
        assert load.movement_type == MovementType.LOAD
        assert load.source == InventoryEndpoint(warehouse.id)
        assert load.destination == InventoryEndpoint(van.id)
        assert unload.movement_type == MovementType.UNLOAD
        assert unload.source == InventoryEndpoint(van.id)
        assert unload.destination == CLIENT
        assert load.move_at <= unload.move_at
        assert next_working_instant(unload.move_at) == unload.move_at

    async def test_feasible_capped_by_van_capacity(self, db, seed, routing):
        product = await seed.product(volume_cc=2000)
        await seed.van(capacity_cc=10_000)
        warehouse = await seed.warehouse()
        await seed.stock(warehouse, product, 50)
        order = await seed.order((product, 20))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert [c.max_feasible_amount for c in result.candidates] == [5]
        assert result.candidates[0].metrics.pressure == pytest.approx(1.0)

    async def test_van_holding_full_quantity_skips_warehouse_path(self, db, seed, routing):
        product = await seed.product()
        van = await seed.van()
        await seed.stock(van, product, 10)
        warehouse = await seed.warehouse()
        await seed.stock(warehouse, product, 50)
        order = await seed.order((product, 8))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert [c.pattern for c in result.candidates] == [PATTERN_VAN_TO_CLIENT]

    async def test_partial_van_gets_both_paths(self, db, seed, routing):
        product = await seed.product()
        van = await seed.van()
        await seed.stock(van, product, 4)
        warehouse = await seed.warehouse()
        await seed.stock(warehouse, product, 50)
        order = await seed.order((product, 8))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert sorted(c.pattern for c in result.candidates) == [
            PATTERN_VAN_TO_CLIENT,
            PATTERN_WAREHOUSE_VAN_CLIENT,
        ]

    async def test_other_city_warehouse_skipped(self, db, seed, routing):
        product = await seed.product()
        await seed.van()
        warehouse = await seed.warehouse(at=JEDDAH)
        await seed.stock(warehouse, product, 50)
        order = await seed.order((product, 8))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert result.candidates == ()

    async def test_default_unit_volume_when_product_has_none(self, db, seed, routing):
        product = await seed.product(volume_cc=None)
        await seed.van(capacity_cc=5_000)
        warehouse = await seed.warehouse()
        await seed.stock(warehouse, product, 50)
        order = await seed.order((product, 20))

        result = await generator_for(db, routing).generate(order, order.items[0])
        # 5000 cc / 1000 cc default
        assert [c.max_feasible_amount for c in result.candidates] == [5]


class TestGenerationProperties:
    async def test_no_stock_yields_empty_result_without_writes(self, db, seed, routing):
        product = await seed.product()
        await seed.van()
        order = await seed.order((product, 3))

        result = await generator_for(db, routing).generate(order, order.items[0])

        assert result.candidates == ()
        assert result.order_item_id == order.items[0].id
        count = await db.scalar(select(func.count()).select_from(Movement))
        assert count == 0

    async def test_zero_quantity_yields_empty_result(self, db, seed, routing):
        product = await seed.product()
        van = await seed.van()
        await seed.stock(van, product, 10)
        order = await seed.order((product, 0))

        result = await generator_for(db, routing).generate(order, order.items[0])
        assert result.candidates == ()
        assert routing.tour_calls == []

    async def test_candidates_sorted_unique_and_bounded(self, db, seed, routing):
        product = await seed.product(volume_cc=1000)
        rows = {}
        for i in range(3):
            van = await seed.van(at=Coordinates(24.72 + i * 0.01, 46.68 + i * 0.01))
            rows[van.id] = await seed.stock(van, product, 3 + i)
        for i in range(3):
            warehouse = await seed.warehouse(at=Coordinates(24.80 + i * 0.02, 46.75))
            await seed.stock(warehouse, product, 30)
        order = await seed.order((product, 12))

        result = await generator_for(db, routing).generate(order, order.items[0])

        candidates = result.candidates
        assert 0 < len(candidates) <= 5
        scores = [c.provisional_score for c in candidates]
        assert scores == sorted(scores)
        row_ids = [c.primary_stock.id for c in candidates]
        assert len(row_ids) == len(set(row_ids))
        for c in candidates:
            assert 0 < c.max_feasible_amount <= c.primary_stock.amount

    async def test_routing_failure_propagates(self, db, seed):
        product = await seed.product()
        van = await seed.van()
        await seed.stock(van, product, 10)
        order = await seed.order((product, 5))

        with pytest.raises(RoutingProviderError):
            await generator_for(db, FakeRoutingProvider(fail_tours=True)).generate(order, order.items[0])

    async def test_client_point_used_for_overhead(self, db, seed, routing):
        product = await seed.product()
        van = await seed.van(at=NEAR_CLIENT)
        await seed.stock(van, product, 10)
        order = await seed.order((product, 5), at=CLIENT_POINT)

        result = await generator_for(db, routing).generate(order, order.items[0])
        expected_km = 2 * FakeRoutingProvider.distance(NEAR_CLIENT, CLIENT_POINT) / 1000
        assert result.candidates[0].metrics.distance_km == pytest.approx(expected_km)
