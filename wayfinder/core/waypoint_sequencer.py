"""
Visiting order and route data for multi-stop itineraries.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence, TypeVar

from wayfinder.core.route_adapter import RoutingOracleAdapter
from wayfinder.core.schemas import Coordinates, OptimizedRoute, RouteLeg, TravelMode

logger = logging.getLogger(__name__)

T = TypeVar("T")


def apply_order(items: Sequence[T], order: list[int], unplaced: Sequence[T] = ()) -> list[T]:
    """
    Reorder caller items by an optimized order, keeping anything the order does
    not mention (e.g. activities without coordinates) at the end.

    Args:
        items: The caller's list, indexed the same way as the waypoints sent in
        order: Indices into ``items`` as returned in OptimizedRoute.order
        unplaced: Extra items to append after everything else
    """
    placed = [items[i] for i in order]
    seen = set(order)
    rest = [item for i, item in enumerate(items) if i not in seen]
    return placed + rest + list(unplaced)


class WaypointSequencer:
    def __init__(self, route_adapter: RoutingOracleAdapter):
        self.route_adapter = route_adapter

    async def optimize(
        self,
        waypoints: list[Coordinates],
        origin: Coordinates | None = None,
        destination: Coordinates | None = None,
        round_trip: bool = False,
        mode: TravelMode = "WALK",
    ) -> OptimizedRoute:
        """
        Order the stops of a multi-stop route.

        Origin is the explicit origin, else the first waypoint. Destination is
        the explicit destination, else the last waypoint, else the origin, so
        ``round_trip`` only decides the end point when no waypoint is left for
        it. Waypoints consumed as origin/destination never appear in the
        returned order; ``order`` holds indices into ``waypoints``.

        Optimization failure never fails the call: the input order is kept and
        legs come from a direct multi-stop query, or from per-leg routing
        (cache/estimate) when that fails too.
        """
        if not waypoints and origin is None:
            raise ValueError("At least one waypoint or an origin is required")

        indexed = list(enumerate(waypoints))

        if origin is not None:
            effective_origin = origin
        else:
            _, effective_origin = indexed.pop(0)

        if destination is not None:
            effective_destination = destination
        elif indexed:
            _, effective_destination = indexed.pop()
        else:
            # Nothing left to end at: return to the origin
            effective_destination = effective_origin

        intermediate_ids = [i for i, _ in indexed]
        intermediates = [c for _, c in indexed]

        if len(intermediates) >= 2:
            result = await self.route_adapter.multi_stop(
                effective_origin, effective_destination, intermediates, mode, optimize=True
            )
            permutation = result.optimized_order if result is not None else None
            if result is not None and _is_permutation(permutation, len(intermediates)):
                logger.info(f"[Sequencer] Optimized {len(intermediates)} stops")
                return OptimizedRoute(
                    order=[intermediate_ids[i] for i in permutation],
                    legs=result.legs,
                    total_distance=result.total_distance,
                    total_duration=result.total_duration,
                    polyline=result.polyline,
                    optimized=True,
                    source="live",
                )
            logger.warning("[Sequencer] Optimization unavailable, keeping input order")

        result = await self.route_adapter.multi_stop(
            effective_origin, effective_destination, intermediates, mode, optimize=False
        )
        if result is not None and result.legs:
            return OptimizedRoute(
                order=intermediate_ids,
                legs=result.legs,
                total_distance=result.total_distance,
                total_duration=result.total_duration,
                polyline=result.polyline,
                optimized=False,
                source="live",
            )

        return await self._route_leg_by_leg(
            [effective_origin, *intermediates, effective_destination],
            intermediate_ids,
            mode,
        )

    async def _route_leg_by_leg(
        self, points: list[Coordinates], order: list[int], mode: TravelMode
    ) -> OptimizedRoute:
        logger.info(f"[Sequencer] Routing {len(points) - 1} legs individually")
        legs: list[RouteLeg] = []
        sources: set[str] = set()

        for start, end in zip(points, points[1:]):
            estimate = await self.route_adapter.route(start, end, mode)
            sources.add(estimate.source)
            legs.append(
                RouteLeg(
                    distance=estimate.total_distance,
                    duration=estimate.total_duration,
                    polyline=estimate.polyline,
                )
            )

        # Report the weakest source among the legs
        source = next((s for s in ("estimate", "cache", "live") if s in sources), "estimate")

        return OptimizedRoute(
            order=order,
            legs=legs,
            total_distance=sum(leg.distance for leg in legs),
            total_duration=sum(leg.duration for leg in legs),
            polyline="",
            optimized=False,
            source=source,
        )

    async def estimate_detour_minutes(
        self, current: Coordinates, stop: Coordinates, mode: TravelMode = "WALK"
    ) -> int:
        """
        Rough extra time for adding ``stop`` to an in-progress route.

        Doubles the one-way duration to the stop (there and back) instead of
        recomputing the full multi-leg route.
        """
        one_way = await self.route_adapter.route(current, stop, mode)
        return one_way.total_duration * 2


def _is_permutation(order: Any, size: int) -> bool:
    return isinstance(order, list) and sorted(order) == list(range(size))
