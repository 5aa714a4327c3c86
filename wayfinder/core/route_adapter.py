"""
Offline-aware routing.

Live answers come from the routing oracle. Whenever the device is offline, the
oracle fails, times out or finds no route, the adapter answers from the route
cache and, failing that, from geometric synthesis. Callers always get a
RouteEstimate.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from wayfinder.core import fallback_routes
from wayfinder.core.offline_gate import OfflineGate
from wayfinder.core.routes_service import RoutesService
from wayfinder.core.schemas import Coordinates, MultiStopRoute, RouteEstimate, TravelMode
from wayfinder.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def calculate_eta(route: RouteEstimate, now: datetime | None = None) -> datetime:
    """Estimated arrival time if the user leaves now."""
    return (now or datetime.now()) + timedelta(minutes=route.total_duration)


def minutes_until_last_departure(
    route: RouteEstimate, now: datetime | None = None
) -> int | None:
    """Minutes left before the route's last transit departure, or None if it has passed."""
    if route.last_departure is None:
        return None
    diff = route.last_departure - (now or datetime.now())
    minutes = int(diff.total_seconds() // 60)
    return minutes if minutes > 0 else None


class RoutingOracleAdapter:
    """Wraps the live routing oracle with cache and synthesis fallbacks."""

    def __init__(
        self,
        oracle: RoutesService | None,
        offline_gate: OfflineGate,
        settings: Settings | None = None,
    ):
        self.oracle = oracle
        self.offline_gate = offline_gate
        self.settings = settings or get_settings()

    async def route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TravelMode = "WALK",
    ) -> RouteEstimate:
        """
        Get a route estimate. Never raises.

        Offline and oracle failure are handled identically: cache hit first,
        then FallbackRouteSynthesizer.
        """
        if not self.offline_gate.is_online():
            logger.info("[RouteAdapter] Offline, skipping live routing")
            return self._fallback(origin, destination, mode)

        estimate = await self._live_route(origin, destination, mode)
        if estimate is None:
            return self._fallback(origin, destination, mode)

        estimate = self._with_departure_warning(estimate)
        try:
            self.offline_gate.cache_route(origin, destination, mode, estimate)
        except Exception as e:
            logger.warning(f"[RouteAdapter] Could not cache route: {e}")
        return estimate

    async def _live_route(
        self, origin: Coordinates, destination: Coordinates, mode: TravelMode
    ) -> RouteEstimate | None:
        if self.oracle is None:
            return None
        try:
            estimate = await asyncio.wait_for(
                self.oracle.get_directions(origin, destination, mode),
                timeout=self.settings.routes_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[RouteAdapter] Routing oracle timed out ({mode})")
            return None
        except Exception as e:
            logger.warning(f"[RouteAdapter] Routing oracle failed ({mode}): {e}")
            return None

        if estimate is None or (not estimate.steps and estimate.total_distance == 0):
            logger.info(f"[RouteAdapter] Routing oracle returned an empty route ({mode})")
            return None
        return estimate

    def _fallback(
        self, origin: Coordinates, destination: Coordinates, mode: TravelMode
    ) -> RouteEstimate:
        try:
            cached = self.offline_gate.get_cached_route(origin, destination, mode)
        except Exception as e:
            logger.warning(f"[RouteAdapter] Route cache lookup failed: {e}")
            cached = None

        if cached is not None:
            logger.info(f"[RouteAdapter] Using cached {mode} route")
            return cached.model_copy(update={"source": "cache"})

        logger.info(f"[RouteAdapter] Synthesizing {mode} route estimate")
        return fallback_routes.synthesize(origin, destination, mode)

    def _with_departure_warning(self, estimate: RouteEstimate) -> RouteEstimate:
        minutes_left = minutes_until_last_departure(estimate)
        threshold = self.settings.last_departure_warning_minutes
        if minutes_left is None or minutes_left > threshold:
            return estimate

        line = next(
            (s.line for s in estimate.steps if s.mode in ("train", "bus") and s.line),
            "train",
        )
        warning = f"Last {line} leaves in {minutes_left} min"
        return estimate.model_copy(update={"last_departure_warning": warning})

    async def multi_stop(
        self,
        origin: Coordinates,
        destination: Coordinates,
        intermediates: list[Coordinates],
        mode: TravelMode = "WALK",
        optimize: bool = False,
    ) -> MultiStopRoute | None:
        """
        Live multi-stop route, or None when offline or the oracle cannot answer.

        Failures are not synthesized here; the caller decides how to degrade.
        """
        if not self.offline_gate.is_online() or self.oracle is None:
            return None
        try:
            return await asyncio.wait_for(
                self.oracle.get_multi_stop_route(
                    origin, destination, intermediates, mode, optimize=optimize
                ),
                timeout=self.settings.routes_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("[RouteAdapter] Multi-stop routing timed out")
            return None
        except Exception as e:
            logger.warning(f"[RouteAdapter] Multi-stop routing failed: {e}")
            return None
