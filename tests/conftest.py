import pytest

from wayfinder.core.offline_gate import InMemoryOfflineGate
from wayfinder.core.schemas import UserContext
from wayfinder.core.settings import Settings

from tests.fakes import SHIBUYA


@pytest.fixture
def settings() -> Settings:
    return Settings(
        aisuite_model="openai:gpt-4o",
        google_maps_api_key="test-key",
        ai_timeout_seconds=2,
        places_timeout_seconds=2,
        routes_timeout_seconds=2,
        max_verification_retries=3,
        ai_strict_json=True,
        chat_history_limit=10,
        route_cache_ttl_minutes=60,
        route_cache_precision=3,
        last_departure_warning_minutes=45,
        allowed_origins="",
    )


@pytest.fixture
def gate() -> InMemoryOfflineGate:
    return InMemoryOfflineGate()


@pytest.fixture
def user_context() -> UserContext:
    return UserContext(
        location=SHIBUYA,
        neighborhood="Shibuya",
        time_of_day="evening",
        local_time="7:45 PM",
        dietary=["vegetarian"],
        interests=["coffee"],
    )
