"""
Connectivity, pending-message queue and route cache.

The pipeline only depends on the ``OfflineGate`` protocol. ``InMemoryOfflineGate``
is the process-local implementation used by the HTTP app and the tests; a
client application would back the same protocol with its own network
detection and persistent storage.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from wayfinder.core.geo_utils import coordinate_key
from wayfinder.core.schemas import Coordinates, RouteEstimate, TravelMode

logger = logging.getLogger(__name__)

ROUTE_CACHE_TTL_MINUTES = 60


class OfflineGate(Protocol):
    def is_online(self) -> bool: ...

    def set_online(self, online: bool) -> None: ...

    def queue_message(self, text: str, attachment: str | None = None) -> None: ...

    def queued_messages(self) -> list[QueuedMessage]: ...

    def drain_queue(self) -> list[QueuedMessage]: ...

    def get_cached_route(
        self, origin: Coordinates, destination: Coordinates, mode: TravelMode
    ) -> RouteEstimate | None: ...

    def cache_route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TravelMode,
        route: RouteEstimate,
    ) -> None: ...


@dataclass
class QueuedMessage:
    content: str
    image: str | None = None
    id: str = field(default_factory=lambda: f"queued-{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)


@dataclass
class _CachedRoute:
    route: RouteEstimate
    expires_at: float


class InMemoryOfflineGate:
    """Thread-safe in-process OfflineGate."""

    def __init__(
        self,
        online: bool = True,
        route_ttl_minutes: int = ROUTE_CACHE_TTL_MINUTES,
        precision: int = 3,
    ) -> None:
        self._online = online
        self._route_ttl_seconds = route_ttl_minutes * 60
        self._precision = precision
        self._lock = threading.Lock()
        self._queue: list[QueuedMessage] = []
        self._routes: dict[tuple, _CachedRoute] = {}
        self.last_online_at: float | None = time.time() if online else None

    # ── connectivity ──────────────────────────────────────────────────────

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = online
        if online:
            self.last_online_at = time.time()
        logger.info(f"[Offline] Network status: {'online' if online else 'offline'}")

    # ── message queue ─────────────────────────────────────────────────────

    def queue_message(self, text: str, attachment: str | None = None) -> None:
        with self._lock:
            self._queue.append(QueuedMessage(content=text, image=attachment))
        logger.info(f"[Offline] Message queued: {text[:30]}")

    def queued_messages(self) -> list[QueuedMessage]:
        with self._lock:
            return list(self._queue)

    def drain_queue(self) -> list[QueuedMessage]:
        """Return every queued message in arrival order and empty the queue."""
        with self._lock:
            drained, self._queue = self._queue, []
        return drained

    def remove_from_queue(self, message_id: str) -> None:
        with self._lock:
            self._queue = [m for m in self._queue if m.id != message_id]

    # ── route cache ───────────────────────────────────────────────────────

    def _route_key(
        self, origin: Coordinates, destination: Coordinates, mode: TravelMode
    ) -> tuple:
        return (
            coordinate_key(origin, self._precision),
            coordinate_key(destination, self._precision),
            mode,
        )

    def cache_route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        mode: TravelMode,
        route: RouteEstimate,
    ) -> None:
        key = self._route_key(origin, destination, mode)
        with self._lock:
            self._routes[key] = _CachedRoute(
                route=route, expires_at=time.time() + self._route_ttl_seconds
            )
        logger.debug(f"[Offline] Cached route: {mode}")

    def get_cached_route(
        self, origin: Coordinates, destination: Coordinates, mode: TravelMode
    ) -> RouteEstimate | None:
        key = self._route_key(origin, destination, mode)
        with self._lock:
            cached = self._routes.get(key)
            if cached is None:
                return None
            if cached.expires_at < time.time():
                del self._routes[key]
                return None
            return cached.route

    def clear_expired_routes(self) -> None:
        now = time.time()
        with self._lock:
            self._routes = {k: v for k, v in self._routes.items() if v.expires_at > now}

    def clear_all(self) -> None:
        with self._lock:
            self._queue = []
            self._routes = {}
        logger.info("[Offline] All offline data cleared")
