"""
Google Places API (New) integration for place lookup, details and photos.
"""

import logging
from typing import Any
from urllib.parse import quote

import requests
from pydantic import BaseModel, Field

from wayfinder.core.errors import ConfigurationError
from wayfinder.core.schemas import Coordinates

logger = logging.getLogger(__name__)

PLACES_API_BASE = "https://places.googleapis.com/v1"
SEARCH_FIELD_MASK = (
    "places.id,places.displayName,places.formattedAddress,places.location,"
    "places.rating,places.priceLevel,places.regularOpeningHours,places.photos,"
    "places.userRatingCount"
)
DETAILS_FIELD_MASK = (
    "id,displayName,formattedAddress,location,rating,priceLevel,"
    "regularOpeningHours,photos,userRatingCount"
)

# Cards use a 1-4 scale with no zero, so free places share the cheapest tier
PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 1,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


class PlaceMatch(BaseModel):
    """Ground-truth record for one place."""

    place_id: str
    name: str
    address: str = ""
    coordinates: Coordinates
    open_now: bool | None = None
    hours: str | None = None
    rating: float | None = None
    price_level: int | None = None
    review_count: int | None = None
    photo_names: list[str] = Field(default_factory=list)


def map_price_level(google_price_level: str | None) -> int | None:
    """Convert a Places price-level enum to the 1-4 scale; unknown stays None."""
    return PRICE_LEVELS.get(google_price_level or "")


def to_place_match(place: dict[str, Any]) -> PlaceMatch | None:
    """Convert a Places API place object; None when it has no usable location."""
    location = place.get("location") or {}
    lat = location.get("latitude")
    lng = location.get("longitude")
    if lat is None or lng is None or not place.get("id"):
        return None

    opening = place.get("regularOpeningHours") or {}
    weekday_text = opening.get("weekdayDescriptions") or []

    return PlaceMatch(
        place_id=place["id"],
        name=(place.get("displayName") or {}).get("text", ""),
        address=place.get("formattedAddress", ""),
        coordinates=Coordinates(latitude=lat, longitude=lng),
        open_now=opening.get("openNow"),
        hours="\n".join(weekday_text) if weekday_text else None,
        rating=place.get("rating"),
        price_level=map_price_level(place.get("priceLevel")),
        review_count=place.get("userRatingCount"),
        photo_names=[p["name"] for p in place.get("photos", []) if p.get("name")],
    )


class PlacesService:
    """Service for interacting with Google Places API (New)."""

    def __init__(self, api_key: str | None, timeout: float = 10.0):
        if not api_key:
            raise ConfigurationError("GOOGLE_MAPS_API_KEY is not set")
        self.api_key = api_key
        self.timeout = timeout

    def search_place(
        self, query: str, bias: Coordinates, radius: int = 5000
    ) -> PlaceMatch | None:
        """
        Find the best match for a place name near a location.

        Args:
            query: Place name (e.g., "Fuglen Tokyo")
            bias: Coordinates to bias the search around
            radius: Bias radius in meters (default 5000m = 5km)

        Returns:
            PlaceMatch, or None when nothing matched

        Raises:
            requests.RequestException on transport or HTTP errors
        """
        response = requests.post(
            f"{PLACES_API_BASE}/places:searchText",
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": SEARCH_FIELD_MASK,
            },
            json={
                "textQuery": query,
                "locationBias": {
                    "circle": {
                        "center": {
                            "latitude": bias.latitude,
                            "longitude": bias.longitude,
                        },
                        "radius": radius,
                    }
                },
                "maxResultCount": 1,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        places = response.json().get("places") or []

        if not places:
            logger.info(f"[Places] No match for '{query}'")
            return None
        return to_place_match(places[0])

    def get_place_details(self, place_id: str) -> PlaceMatch | None:
        """
        Get detailed information about a specific place.

        Raises:
            requests.RequestException on transport or HTTP errors
        """
        response = requests.get(
            f"{PLACES_API_BASE}/places/{place_id}",
            headers={
                "X-Goog-Api-Key": self.api_key,
                "X-Goog-FieldMask": DETAILS_FIELD_MASK,
            },
            timeout=self.timeout,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return to_place_match(response.json())

    def get_place_photo_url(self, photo_name: str, max_width: int = 600) -> str | None:
        """
        Get a photo media URL from a photo resource name.

        Args:
            photo_name: e.g. "places/ChIJ.../photos/AUc..."
            max_width: Maximum width in pixels
        """
        if not photo_name:
            return None

        return f"{PLACES_API_BASE}/{photo_name}/media?maxWidthPx={max_width}&key={self.api_key}"

    def get_proxy_photo_url(self, photo_name: str, max_width: int = 600) -> str | None:
        """Build a relative URL to the backend photo proxy."""
        if not photo_name:
            return None
        return f"/places/photo?ref={quote(photo_name, safe='')}&w={max_width}"
