import asyncio
from datetime import datetime, timedelta

import pytest

from wayfinder.core.errors import RoutingOracleError
from wayfinder.core.route_adapter import (
    RoutingOracleAdapter,
    calculate_eta,
    minutes_until_last_departure,
)
from wayfinder.core.schemas import Coordinates, RouteEstimate, RouteStep

from tests.fakes import SHIBUYA, FakeRoutes, live_walk

CAFE = Coordinates(latitude=35.6610, longitude=139.7010)


@pytest.mark.asyncio
async def test_live_route_is_returned_and_cached(settings, gate):
    routes = FakeRoutes(directions=live_walk())
    adapter = RoutingOracleAdapter(routes, gate, settings)

    route = await adapter.route(SHIBUYA, CAFE, "WALK")
    assert route.source == "live"
    assert route.total_duration == 6
    assert gate.get_cached_route(SHIBUYA, CAFE, "WALK") is not None


@pytest.mark.asyncio
async def test_offline_never_calls_oracle(settings, gate):
    routes = FakeRoutes(directions=live_walk())
    gate.set_online(False)
    adapter = RoutingOracleAdapter(routes, gate, settings)

    route = await adapter.route(SHIBUYA, CAFE, "WALK")
    assert routes.direction_calls == 0
    assert route.source == "estimate"


@pytest.mark.asyncio
async def test_offline_prefers_cached_route(settings, gate):
    gate.cache_route(SHIBUYA, CAFE, "WALK", live_walk(duration=9))
    gate.set_online(False)
    adapter = RoutingOracleAdapter(FakeRoutes(), gate, settings)

    route = await adapter.route(SHIBUYA, CAFE, "WALK")
    assert route.source == "cache"
    assert route.total_duration == 9


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "answer",
    [
        RoutingOracleError("Routes API error: 500"),
        None,
        RouteEstimate(steps=[], total_duration=0, total_distance=0),
    ],
)
async def test_oracle_failure_falls_back_to_estimate(settings, gate, answer):
    adapter = RoutingOracleAdapter(FakeRoutes(directions=answer), gate, settings)

    route = await adapter.route(SHIBUYA, CAFE, "WALK")
    assert route.source == "estimate"
    assert route.total_duration >= 1
    assert gate.get_cached_route(SHIBUYA, CAFE, "WALK") is None


@pytest.mark.asyncio
async def test_oracle_timeout_falls_back(settings, gate):
    class SlowRoutes(FakeRoutes):
        async def get_directions(self, origin, destination, mode="WALK"):
            await asyncio.sleep(5)

    settings.routes_timeout_seconds = 0.05
    adapter = RoutingOracleAdapter(SlowRoutes(), gate, settings)

    route = await adapter.route(SHIBUYA, CAFE, "WALK")
    assert route.source == "estimate"


@pytest.mark.asyncio
async def test_no_oracle_configured(settings, gate):
    adapter = RoutingOracleAdapter(None, gate, settings)
    route = await adapter.route(SHIBUYA, CAFE, "DRIVE")
    assert route.source == "estimate"
    assert await adapter.multi_stop(SHIBUYA, CAFE, [CAFE], "WALK") is None


@pytest.mark.asyncio
async def test_last_departure_warning(settings, gate):
    soon = datetime.now() + timedelta(minutes=20, seconds=30)
    transit = RouteEstimate(
        steps=[
            RouteStep(mode="walk", instruction="Walk to station", duration=4, distance=300),
            RouteStep(mode="train", instruction="Take Ginza", line="Ginza", duration=12),
        ],
        total_duration=20,
        total_distance=4000,
        last_departure=soon,
    )
    adapter = RoutingOracleAdapter(FakeRoutes(directions=transit), gate, settings)

    route = await adapter.route(SHIBUYA, CAFE, "TRANSIT")
    assert route.last_departure_warning == "Last Ginza leaves in 20 min"


@pytest.mark.asyncio
async def test_multi_stop_errors_become_none(settings, gate):
    adapter = RoutingOracleAdapter(
        FakeRoutes(multi_stop=[RoutingOracleError("boom")]), gate, settings
    )
    assert await adapter.multi_stop(SHIBUYA, CAFE, [CAFE, SHIBUYA], "WALK", optimize=True) is None


def test_eta_and_minutes_until_last_departure():
    now = datetime(2026, 5, 1, 22, 0)
    route = RouteEstimate(
        total_duration=25, total_distance=3000, last_departure=now + timedelta(minutes=30)
    )
    assert calculate_eta(route, now) == now + timedelta(minutes=25)
    assert minutes_until_last_departure(route, now) == 30
    assert minutes_until_last_departure(route, now + timedelta(hours=1)) is None
    assert minutes_until_last_departure(RouteEstimate(), now) is None
