from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from wayfinder.core.route_adapter import calculate_eta, minutes_until_last_departure
from wayfinder.core.schemas import Coordinates, OptimizedRoute, TravelMode


class RouteRequest(BaseModel):
    origin: Coordinates
    destination: Coordinates
    mode: TravelMode = "WALK"


class OptimizeRequest(BaseModel):
    waypoints: List[Coordinates] = Field(default_factory=list)
    origin: Optional[Coordinates] = None
    destination: Optional[Coordinates] = None
    round_trip: bool = False
    mode: TravelMode = "WALK"


class DetourRequest(BaseModel):
    current: Coordinates
    stop: Coordinates
    mode: TravelMode = "WALK"


router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("")
async def get_route(req: RouteRequest, request: Request) -> Dict[str, object]:
    """Route between two points; falls back to cached or estimated routes."""
    route = await request.app.state.route_adapter.route(req.origin, req.destination, req.mode)
    return {
        "route": route,
        "eta": calculate_eta(route).isoformat(),
        "minutesUntilLastDeparture": minutes_until_last_departure(route),
    }


@router.post("/optimize")
async def optimize_route(req: OptimizeRequest, request: Request) -> OptimizedRoute:
    """Order itinerary stops; keeps input order when optimization is unavailable."""
    try:
        return await request.app.state.sequencer.optimize(
            req.waypoints,
            origin=req.origin,
            destination=req.destination,
            round_trip=req.round_trip,
            mode=req.mode,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/detour")
async def estimate_detour(req: DetourRequest, request: Request) -> Dict[str, int]:
    minutes = await request.app.state.sequencer.estimate_detour_minutes(
        req.current, req.stop, req.mode
    )
    return {"minutes": minutes}
