import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from wayfinder.api.routers.chat import router as chat_router
from wayfinder.api.routers.places import router as places_router
from wayfinder.api.routers.routes import router as routes_router
from wayfinder.core.companion import CompanionChat
from wayfinder.core.errors import ConfigurationError
from wayfinder.core.offline_gate import InMemoryOfflineGate, OfflineGate
from wayfinder.core.places_service import PlacesService
from wayfinder.core.recommendation_verifier import RecommendationVerifier
from wayfinder.core.route_adapter import RoutingOracleAdapter
from wayfinder.core.routes_service import RoutesService
from wayfinder.core.settings import Settings, get_settings
from wayfinder.core.waypoint_sequencer import WaypointSequencer

load_dotenv()

logger = logging.getLogger(__name__)


class ConnectivityUpdate(BaseModel):
    online: bool


def create_app(
    settings: Optional[Settings] = None,
    offline_gate: Optional[OfflineGate] = None,
    places: Optional[PlacesService] = None,
    routes: Optional[RoutesService] = None,
    llm=None,
) -> FastAPI:
    settings = settings or get_settings()
    application = FastAPI(title="Wayfinder Backend")

    # CORS: local Expo / web dev servers
    allowed_origins = [
        "http://localhost:8081",
        "http://localhost:19006",
        "http://127.0.0.1:8081",
        "http://127.0.0.1:19006",
    ]

    # Add production origins from environment if set
    if settings.allowed_origins:
        allowed_origins.extend(
            [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]
        )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    if offline_gate is None:
        offline_gate = InMemoryOfflineGate(
            route_ttl_minutes=settings.route_cache_ttl_minutes,
            precision=settings.route_cache_precision,
        )

    # Oracle clients are optional: without a Maps key the app still answers
    # with unverified recommendations and estimated routes
    if places is None:
        try:
            places = PlacesService(
                settings.google_maps_api_key, timeout=settings.places_timeout_seconds
            )
        except ConfigurationError as e:
            logger.warning(f"[App] Place lookup disabled: {e}")
    if routes is None:
        try:
            routes = RoutesService(
                settings.google_maps_api_key, timeout=settings.routes_timeout_seconds
            )
        except ConfigurationError as e:
            logger.warning(f"[App] Live routing disabled: {e}")

    route_adapter = RoutingOracleAdapter(routes, offline_gate, settings)
    verifier = RecommendationVerifier(places, route_adapter, offline_gate, settings)

    application.state.settings = settings
    application.state.offline_gate = offline_gate
    application.state.places = places
    application.state.route_adapter = route_adapter
    application.state.sequencer = WaypointSequencer(route_adapter)
    application.state.companion = CompanionChat(settings, offline_gate, verifier, llm=llm)

    @application.get("/healthz")
    def healthz(request: Request) -> dict:
        return {
            "status": "ok",
            "online": request.app.state.offline_gate.is_online(),
            "placeLookup": request.app.state.places is not None,
            "liveRouting": request.app.state.route_adapter.oracle is not None,
        }

    @application.put("/connectivity")
    def set_connectivity(update: ConnectivityUpdate, request: Request) -> dict:
        """Report device connectivity; queued messages wait for /chat/queue/replay."""
        gate = request.app.state.offline_gate
        gate.set_online(update.online)
        return {"online": gate.is_online(), "queued": len(gate.queued_messages())}

    application.include_router(chat_router)
    application.include_router(routes_router)
    application.include_router(places_router)
    return application


app = create_app()
