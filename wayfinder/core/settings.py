import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    aisuite_model: str = os.getenv("AISUITE_MODEL", "openai:gpt-4o")
    google_maps_api_key: str = os.getenv("GOOGLE_MAPS_API_KEY", "")

    # Client-side timeouts (seconds) for every external call
    ai_timeout_seconds: float = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
    places_timeout_seconds: float = float(os.getenv("PLACES_TIMEOUT_SECONDS", "10"))
    routes_timeout_seconds: float = float(os.getenv("ROUTES_TIMEOUT_SECONDS", "10"))

    max_verification_retries: int = int(os.getenv("MAX_VERIFICATION_RETRIES", "3"))
    ai_strict_json: bool = _env_bool("AI_STRICT_JSON", "true")
    chat_history_limit: int = int(os.getenv("CHAT_HISTORY_LIMIT", "10"))

    route_cache_ttl_minutes: int = int(os.getenv("ROUTE_CACHE_TTL_MINUTES", "60"))
    route_cache_precision: int = int(os.getenv("ROUTE_CACHE_PRECISION", "3"))
    last_departure_warning_minutes: int = int(
        os.getenv("LAST_DEPARTURE_WARNING_MINUTES", "45")
    )

    allowed_origins: str = os.getenv("ALLOWED_ORIGINS", "")


def get_settings() -> Settings:
    return Settings()
