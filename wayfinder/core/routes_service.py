"""
Google Routes API (v2) client for live directions and multi-stop routes.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

import httpx

from wayfinder.core.errors import (
    ConfigurationError,
    OptimizationUnsupportedError,
    RoutingOracleError,
)
from wayfinder.core.schemas import (
    Coordinates,
    MultiStopRoute,
    RouteEstimate,
    RouteLeg,
    RouteStep,
    TravelMode,
)

logger = logging.getLogger(__name__)

ROUTES_API_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
ROUTE_FIELD_MASK = "routes.legs,routes.distanceMeters,routes.duration,routes.polyline"
MULTI_STOP_FIELD_MASK = (
    "routes.legs.distanceMeters,routes.legs.duration,routes.legs.polyline,"
    "routes.distanceMeters,routes.duration,routes.polyline,"
    "routes.optimizedIntermediateWaypointIndex"
)

_SECONDS_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)s$")
_ISO_PATTERN = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?$")
_CLOCK_PATTERN = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM|am|pm)?")


def parse_duration(duration: Any) -> float:
    """
    Parse a routing duration into minutes.

    Accepts the Routes API seconds encoding ("1860s") and ISO-8601 durations
    ("PT15M30S"). Anything else parses to 0.
    """
    if not isinstance(duration, str) or not duration:
        return 0.0

    seconds_match = _SECONDS_PATTERN.match(duration.strip())
    if seconds_match:
        return float(seconds_match.group(1)) / 60

    iso_match = _ISO_PATTERN.match(duration.strip())
    if iso_match and any(iso_match.groups()):
        hours = int(iso_match.group(1) or 0)
        minutes = int(iso_match.group(2) or 0)
        seconds = float(iso_match.group(3) or 0)
        return hours * 60 + minutes + seconds / 60

    logger.warning(f"[Routes] Unknown duration format: {duration}")
    return 0.0


def parse_clock_time(time_text: str, today: datetime | None = None) -> datetime | None:
    """
    Turn a localized departure time ("11:47 PM" or "23:47") into today's datetime.
    """
    match = _CLOCK_PATTERN.search(time_text or "")
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2))
    meridiem = (match.group(3) or "").upper()

    if meridiem == "AM" and hour == 12:
        hour = 0
    elif meridiem == "PM" and hour != 12:
        hour += 12

    if hour > 23 or minute > 59:
        return None

    base = today or datetime.now()
    return base.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _lat_lng(coords: Coordinates) -> dict[str, Any]:
    return {
        "location": {
            "latLng": {"latitude": coords.latitude, "longitude": coords.longitude}
        }
    }


def _parse_transit_step(step: dict[str, Any]) -> tuple[RouteStep, datetime | None]:
    transit = step.get("transitDetails") or {}
    line = transit.get("transitLine") or {}
    stops = transit.get("stopDetails") or {}

    vehicle_type = ((line.get("vehicle") or {}).get("type") or "train").lower()
    mode = "bus" if "bus" in vehicle_type else "train"

    line_name = line.get("nameShort") or line.get("name") or "Line"
    direction = transit.get("headsign") or ""
    departure_stop = (stops.get("departureStop") or {}).get("name", "")
    arrival_stop = (stops.get("arrivalStop") or {}).get("name", "")

    departure_text = (
        ((transit.get("localizedValues") or {}).get("departureTime") or {})
        .get("time", {})
        .get("text")
    )
    departure = parse_clock_time(departure_text) if departure_text else None

    instruction = f"Take {line_name}"
    if direction:
        instruction += f" towards {direction}"

    route_step = RouteStep(
        mode=mode,
        instruction=instruction,
        details=f"{transit.get('stopCount') or 0} stops from {departure_stop} to {arrival_stop}",
        line=line_name,
        direction=direction or None,
        duration=parse_duration(step.get("staticDuration")),
        distance=step.get("distanceMeters"),
    )
    return route_step, departure


def parse_route(route: dict[str, Any], mode: TravelMode) -> RouteEstimate:
    """Convert one entry of the Routes API ``routes`` array into a RouteEstimate."""
    steps: list[RouteStep] = []
    last_departure: datetime | None = None

    default_mode = {"WALK": "walk", "DRIVE": "taxi", "TRANSIT": "walk"}[mode]
    default_instruction = "Continue driving" if mode == "DRIVE" else "Continue walking"

    for leg in route.get("legs") or []:
        for step in leg.get("steps") or []:
            if step.get("travelMode") == "TRANSIT" and step.get("transitDetails"):
                transit_step, departure = _parse_transit_step(step)
                steps.append(transit_step)
                if departure and (last_departure is None or departure > last_departure):
                    last_departure = departure
                continue

            instruction = (step.get("navigationInstruction") or {}).get("instructions")
            steps.append(
                RouteStep(
                    mode=default_mode,
                    instruction=instruction or default_instruction,
                    duration=parse_duration(step.get("staticDuration")),
                    distance=step.get("distanceMeters"),
                )
            )

    return RouteEstimate(
        steps=steps,
        total_duration=round(parse_duration(route.get("duration"))),
        total_distance=int(route.get("distanceMeters") or 0),
        polyline=(route.get("polyline") or {}).get("encodedPolyline", ""),
        last_departure=last_departure,
        source="live",
    )


def parse_multi_stop_route(route: dict[str, Any]) -> MultiStopRoute:
    legs = [
        RouteLeg(
            distance=int(leg.get("distanceMeters") or 0),
            duration=round(parse_duration(leg.get("duration"))),
            polyline=(leg.get("polyline") or {}).get("encodedPolyline", ""),
        )
        for leg in route.get("legs") or []
    ]
    optimized = route.get("optimizedIntermediateWaypointIndex")

    return MultiStopRoute(
        legs=legs,
        total_distance=int(route.get("distanceMeters") or 0),
        total_duration=round(parse_duration(route.get("duration"))),
        polyline=(route.get("polyline") or {}).get("encodedPolyline", ""),
        optimized_order=list(optimized) if isinstance(optimized, list) else None,
    )


class RoutesService:
    """Service for interacting with the Google Routes API."""

    def __init__(
        self,
        api_key: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ConfigurationError("GOOGLE_MAPS_API_KEY is not set")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self, field_mask: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
        }

    def _build_body(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TravelMode,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "origin": _lat_lng(origin),
            "destination": _lat_lng(destination),
            "travelMode": mode,
            "languageCode": "en-US",
            "units": "METRIC",
        }
        if mode == "TRANSIT":
            body["computeAlternativeRoutes"] = False
            body["transitPreferences"] = {
                "allowedTravelModes": ["TRAIN", "SUBWAY", "BUS"],
                "routingPreference": "FEWER_TRANSFERS",
            }
        elif mode == "DRIVE":
            body["routingPreference"] = "TRAFFIC_AWARE"
        return body

    async def _post(self, body: dict[str, Any], field_mask: str) -> dict[str, Any] | None:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            resp = await client.post(
                ROUTES_API_URL, json=body, headers=self._headers(field_mask)
            )

        if resp.status_code >= 400:
            logger.warning(f"[Routes] API error {resp.status_code}: {resp.text[:200]}")
            raise RoutingOracleError(f"Routes API error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise RoutingOracleError("Routes API returned a non-JSON body") from e

        routes = data.get("routes") or []
        if not routes:
            logger.info("[Routes] No routes found")
            return None
        return routes[0]

    async def get_directions(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TravelMode = "WALK",
    ) -> RouteEstimate | None:
        """
        Fetch live directions for one origin/destination pair.

        Returns:
            RouteEstimate, or None when the oracle found no route

        Raises:
            RoutingOracleError, httpx.HTTPError
        """
        route = await self._post(self._build_body(origin, destination, mode), ROUTE_FIELD_MASK)
        if route is None:
            return None
        try:
            estimate = parse_route(route, mode)
        except (ValueError, TypeError, AttributeError) as e:
            raise RoutingOracleError(f"Unreadable route payload: {e}") from e

        logger.debug(
            f"[Routes] {mode} directions fetched: steps={len(estimate.steps)}, "
            f"duration={estimate.total_duration}, distance={estimate.total_distance}"
        )
        return estimate

    async def get_multi_stop_route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        intermediates: list[Coordinates],
        mode: TravelMode = "WALK",
        optimize: bool = False,
    ) -> MultiStopRoute | None:
        """
        Fetch a route through intermediate stops, optionally letting the
        oracle reorder them.

        Raises:
            OptimizationUnsupportedError: transit routes cannot take intermediates
            RoutingOracleError, httpx.HTTPError
        """
        if mode == "TRANSIT" and intermediates:
            raise OptimizationUnsupportedError(
                "Transit routes do not support intermediate waypoints"
            )

        body = self._build_body(origin, destination, mode)
        body["intermediates"] = [_lat_lng(c) for c in intermediates]
        if optimize:
            body["optimizeWaypointOrder"] = True
            # Waypoint optimization rejects traffic-aware routing preferences
            body.pop("routingPreference", None)

        route = await self._post(body, MULTI_STOP_FIELD_MASK)
        if route is None:
            return None
        try:
            return parse_multi_stop_route(route)
        except (ValueError, TypeError, AttributeError) as e:
            raise RoutingOracleError(f"Unreadable route payload: {e}") from e
