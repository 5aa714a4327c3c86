"""In-memory stand-ins for the three external oracles."""

import json
from typing import Any, Optional

from wayfinder.core.places_service import PlaceMatch, PlacesService
from wayfinder.core.routes_service import RoutesService
from wayfinder.core.schemas import (
    Coordinates,
    MultiStopRoute,
    RouteEstimate,
    RouteLeg,
    RouteStep,
)

SHIBUYA = Coordinates(latitude=35.6595, longitude=139.7004)


def ai_reply(
    name: Optional[str] = None,
    text: str = "Here's a spot you might like.",
    open_now: bool = True,
    latitude: float = 35.0,
    longitude: float = 139.0,
    show_map: bool = True,
    actions: Optional[list] = None,
) -> str:
    """Build a JSON reply in the shape the companion prompt asks for."""
    card = None
    if name:
        card = {
            "name": name,
            "address": "AI guessed address",
            "rating": 4.5,
            "priceLevel": 2,
            "distance": "3 min walk",
            "openNow": open_now,
            "coordinates": {"latitude": latitude, "longitude": longitude},
        }
    return json.dumps(
        {
            "text": text,
            "recommendation": card,
            "showMap": show_map,
            "actions": actions
            if actions is not None
            else [{"label": "Take me there", "type": "navigate"}],
        }
    )


def place_match(
    name: str,
    latitude: float,
    longitude: float,
    open_now: Optional[bool] = True,
    place_id: Optional[str] = None,
    photo_names: Optional[list] = None,
    review_count: Optional[int] = None,
) -> PlaceMatch:
    return PlaceMatch(
        place_id=place_id or f"id-{name.lower().replace(' ', '-')}",
        name=name,
        address=f"{name} street 1, Shibuya",
        coordinates=Coordinates(latitude=latitude, longitude=longitude),
        open_now=open_now,
        hours="Monday: 8:00 AM - 8:00 PM",
        rating=4.2,
        price_level=2,
        review_count=review_count,
        photo_names=photo_names or [],
    )


class FakeLLM:
    """Returns scripted replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: list):
        self.replies = list(replies)
        self.calls: list[list[dict[str, Any]]] = []

    async def chat_async(self, messages, temperature=0.7, json_mode=False, timeout=None):
        self.calls.append(messages)
        if not self.replies:
            raise AssertionError("AI oracle called more often than scripted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakePlaces(PlacesService):
    """Places client answering from dictionaries keyed by name and place id."""

    def __init__(self, matches: Optional[dict] = None, details: Optional[dict] = None):
        super().__init__(api_key="test-key", timeout=1.0)
        self.matches = matches or {}
        self.details = details or {}
        self.searches: list[str] = []

    def search_place(self, query, bias, radius=5000):
        self.searches.append(query)
        result = self.matches.get(query)
        if isinstance(result, Exception):
            raise result
        return result

    def get_place_details(self, place_id):
        result = self.details.get(place_id)
        if isinstance(result, Exception):
            raise result
        return result


class FakeRoutes(RoutesService):
    """Routes client with scripted answers; an Exception entry is raised."""

    def __init__(self, directions: Any = None, multi_stop: Optional[list] = None):
        super().__init__(api_key="test-key", timeout=1.0)
        self.directions = directions
        self.multi_stop = list(multi_stop or [])
        self.direction_calls = 0
        self.multi_stop_calls: list[dict[str, Any]] = []

    async def get_directions(self, origin, destination, mode="WALK"):
        self.direction_calls += 1
        if isinstance(self.directions, Exception):
            raise self.directions
        return self.directions

    async def get_multi_stop_route(
        self, origin, destination, intermediates, mode="WALK", optimize=False
    ):
        self.multi_stop_calls.append(
            {
                "origin": origin,
                "destination": destination,
                "intermediates": list(intermediates),
                "optimize": optimize,
                "mode": mode,
            }
        )
        result = self.multi_stop.pop(0) if self.multi_stop else None
        if isinstance(result, Exception):
            raise result
        return result


def live_walk(duration: int = 6, distance: int = 450) -> RouteEstimate:
    return RouteEstimate(
        steps=[RouteStep(mode="walk", instruction="Head north", duration=duration, distance=distance)],
        total_duration=duration,
        total_distance=distance,
        polyline="abc123",
        source="live",
    )


def multi_stop_route(legs: int, optimized_order: Optional[list] = None) -> MultiStopRoute:
    return MultiStopRoute(
        legs=[RouteLeg(distance=500, duration=6, polyline="p") for _ in range(legs)],
        total_distance=500 * legs,
        total_duration=6 * legs,
        polyline="overview",
        optimized_order=optimized_order,
    )
