from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

TravelMode = Literal["WALK", "TRANSIT", "DRIVE"]
RouteSource = Literal["live", "cache", "estimate"]


# =============================================================================
# Location
# =============================================================================


class Coordinates(BaseModel):
    """A complete latitude/longitude pair."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


# =============================================================================
# Conversation turn schemas
# =============================================================================


class Action(BaseModel):
    label: str
    type: str = Field(..., description="e.g. 'navigate' or 'regenerate'")


class RecommendationCard(BaseModel):
    """Structured place suggestion surfaced to the user."""

    name: str
    address: str = ""
    coordinates: Coordinates | None = None
    rating: float | None = Field(None, description="Rating (1-5)")
    price_level: int | None = Field(None, ge=1, le=4, description="Price level (1-4)")
    open_now: bool | None = None
    hours: str | None = None
    estimated_cost: str | None = Field(None, description="Cost in local currency")
    distance_label: str | None = Field(None, description="e.g. '8 min walk'")
    photos: list[str] = Field(default_factory=list)

    # Place-lookup enrichment fields
    place_id: str | None = Field(None, description="Google Place ID")
    review_count: int | None = None
    verified: bool = Field(
        False, description="True once coordinates/open status come from place lookup"
    )


class MapMarker(BaseModel):
    id: str
    coordinate: Coordinates
    title: str


class MapRequest(BaseModel):
    center: Coordinates
    markers: list[MapMarker] = Field(default_factory=list)


class ParsedTurn(BaseModel):
    """Structured view of one raw AI reply."""

    content: str
    card: RecommendationCard | None = None
    map_requested: bool = False
    actions: list[Action] = Field(default_factory=list)


class TurnResult(BaseModel):
    """What the caller receives for one conversation turn."""

    content: str
    card: RecommendationCard | None = None
    map_request: MapRequest | None = None
    actions: list[Action] = Field(default_factory=list)
    status: Literal["resolved", "degraded", "offline", "unavailable", "config_error"] = (
        "resolved"
    )


class UserContext(BaseModel):
    """Situational context sent along with every turn."""

    location: Coordinates
    neighborhood: str | None = None
    time_of_day: str | None = Field(None, description="morning|afternoon|evening|night")
    local_time: str | None = Field(None, description="e.g. '7:45 PM'")
    weather: str | None = None
    temperature: float | None = None
    budget_remaining: float | None = None
    budget_level: str | None = Field(None, description="budget|moderate|luxury")
    walking_minutes_today: int | None = None
    dietary: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    avoid_crowds: bool = False


class HistoryMessage(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str


# =============================================================================
# Routing schemas
# =============================================================================


class RouteStep(BaseModel):
    mode: Literal["walk", "train", "bus", "taxi", "estimate"]
    instruction: str
    details: str | None = Field(None, description="e.g. '5 stops from A to B'")
    line: str | None = None
    direction: str | None = None
    duration: float = Field(0, ge=0, description="Minutes")
    distance: int | None = Field(None, ge=0, description="Meters")


class RouteEstimate(BaseModel):
    steps: list[RouteStep] = Field(default_factory=list)
    total_duration: int = Field(0, ge=0, description="Minutes")
    total_distance: int = Field(0, ge=0, description="Meters")
    polyline: str = ""
    last_departure: datetime | None = Field(
        None, description="Latest transit departure seen on the route"
    )
    last_departure_warning: str | None = None
    source: RouteSource = "live"

    @model_validator(mode="after")
    def _clamp_duration(self) -> "RouteEstimate":
        # A route that covers ground always takes at least a minute
        if self.total_distance > 0 and self.total_duration < 1:
            self.total_duration = 1
        return self


class RouteLeg(BaseModel):
    distance: int = Field(0, ge=0, description="Meters")
    duration: int = Field(0, ge=0, description="Minutes")
    polyline: str = ""

    @model_validator(mode="after")
    def _clamp_duration(self) -> "RouteLeg":
        if self.distance > 0 and self.duration < 1:
            self.duration = 1
        return self


class MultiStopRoute(BaseModel):
    """Routing oracle answer for origin -> intermediates -> destination."""

    legs: list[RouteLeg] = Field(default_factory=list)
    total_distance: int = 0
    total_duration: int = 0
    polyline: str = ""
    optimized_order: list[int] | None = Field(
        None, description="Permutation over the intermediates as sent to the oracle"
    )

    @model_validator(mode="after")
    def _clamp_duration(self) -> "MultiStopRoute":
        if self.total_distance > 0 and self.total_duration < 1:
            self.total_duration = 1
        return self


class OptimizedRoute(BaseModel):
    order: list[int] = Field(
        default_factory=list,
        description="Indices into the caller's waypoint list, intermediates only",
    )
    legs: list[RouteLeg] = Field(default_factory=list)
    total_distance: int = 0
    total_duration: int = 0
    polyline: str = ""
    optimized: bool = False
    source: RouteSource = "live"

    @model_validator(mode="after")
    def _clamp_duration(self) -> "OptimizedRoute":
        if self.total_distance > 0 and self.total_duration < 1:
            self.total_duration = 1
        return self
