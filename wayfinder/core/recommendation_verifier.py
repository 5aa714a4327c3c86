"""
Recommendation verification loop.

An AI recommendation is checked against the place-lookup oracle before it is
shown. Ground truth always replaces the AI's guessed coordinates, address and
open status. A venue that turns out to be closed is excluded and the AI is asked
again, up to ``max_attempts`` times; when every retry is used up the card is
dropped so the user is never pointed at a closed venue.

State machine::

    PENDING -> VERIFYING -> (RETRYING -> VERIFYING)* -> RESOLVED | DEGRADED

Enrichment (photos, review count, walking distance) runs afterwards, each step
independently, and can only ever leave a field absent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from wayfinder.core.geo_utils import format_walk_label
from wayfinder.core.offline_gate import OfflineGate
from wayfinder.core.places_service import PlaceMatch, PlacesService
from wayfinder.core.response_parser import parse_response
from wayfinder.core.route_adapter import RoutingOracleAdapter
from wayfinder.core.schemas import ParsedTurn, RecommendationCard, UserContext
from wayfinder.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

MAX_PHOTOS = 3


class VerificationState(str, Enum):
    PENDING = "pending"
    VERIFYING = "verifying"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    DEGRADED = "degraded"


@dataclass
class RetryState:
    attempt: int = 0
    max_attempts: int = 3

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def advance(self) -> None:
        if self.exhausted:
            raise RuntimeError("retry budget exhausted")
        self.attempt += 1


class ExclusionSet:
    """Ordered, case-insensitive set of place names to avoid on re-query."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: list[str] = []
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        if name and name not in self:
            self._names.append(name)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        folded = name.casefold()
        return any(n.casefold() == folded for n in self._names)

    def __iter__(self):
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def as_list(self) -> list[str]:
        return list(self._names)


@dataclass
class EnrichmentOutcome:
    """Result of one best-effort external call: a value, or the reason it is absent."""

    ok: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any) -> "EnrichmentOutcome":
        return cls(ok=True, value=value)

    @classmethod
    def absent(cls, error: str) -> "EnrichmentOutcome":
        return cls(ok=False, error=error)


@dataclass
class VerificationResult:
    turn: ParsedTurn
    state: VerificationState
    attempts: int
    exclusions: list[str]
    lookup: EnrichmentOutcome | None = None
    enrichments: dict[str, EnrichmentOutcome] = field(default_factory=dict)
    cancelled: bool = False


def build_exclusion_instruction(exclusions: Iterable[str]) -> str:
    names = ", ".join(exclusions)
    return (
        f"The following places are closed right now: {names}. "
        "Do NOT recommend any of them again. Recommend a different real place "
        "that is open now, using the same JSON response format."
    )


class RecommendationVerifier:
    def __init__(
        self,
        places: PlacesService | None,
        route_adapter: RoutingOracleAdapter,
        offline_gate: OfflineGate,
        settings: Settings | None = None,
    ):
        self.places = places
        self.route_adapter = route_adapter
        self.offline_gate = offline_gate
        self.settings = settings or get_settings()

    async def verify(
        self,
        turn: ParsedTurn,
        user_context: UserContext,
        messages: list[dict[str, Any]],
        llm: Any,
        exclusions: Iterable[str] = (),
        attempt: int = 0,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> VerificationResult:
        """
        Verify, retry and enrich one parsed turn. Never raises for oracle failures.

        Args:
            turn: Parsed AI reply
            user_context: Supplies the lookup bias and routing origin
            messages: The messages that produced ``turn``; re-queries append an
                exclusion instruction to these
            llm: Conversational-AI oracle exposing ``chat_async``
            exclusions: Names already excluded by the caller
            attempt: Retries already spent by the caller
            is_cancelled: Checked before every retry

        Returns:
            VerificationResult in state RESOLVED or DEGRADED
        """
        excluded = ExclusionSet(exclusions)
        retry = RetryState(
            attempt=min(attempt, self.settings.max_verification_retries),
            max_attempts=self.settings.max_verification_retries,
        )
        state = VerificationState.PENDING
        current = turn
        lookup: EnrichmentOutcome | None = None

        while current.card is not None:
            state = VerificationState.VERIFYING
            card = current.card
            logger.info(f"[Verifier] Verifying '{card.name}' (attempt {retry.attempt})")

            lookup = await self._lookup(card, user_context)
            if not lookup.ok:
                # Best effort: keep the AI's guess rather than block the turn
                logger.warning(
                    f"[Verifier] Lookup for '{card.name}' unavailable ({lookup.error}), "
                    "keeping AI-provided details"
                )
                break

            card = reconcile(card, lookup.value)
            current = current.model_copy(update={"card": card})

            if card.open_now is not False:
                break

            logger.info(f"[Verifier] '{card.name}' is closed")
            excluded.add(card.name)

            if retry.exhausted:
                return self._degraded(current, retry, excluded, lookup)

            if is_cancelled is not None and is_cancelled():
                logger.info("[Verifier] Turn cancelled between attempts")
                result = self._degraded(current, retry, excluded, lookup)
                result.cancelled = True
                return result

            state = VerificationState.RETRYING
            retry.advance()
            logger.info(
                f"[Verifier] {state.value} (attempt {retry.attempt}/{retry.max_attempts}), "
                f"excluding: {', '.join(excluded)}"
            )
            retried = await self._requery(messages, excluded, llm, user_context)
            if retried is None:
                return self._degraded(current, retry, excluded, lookup)
            current = retried

        if current.card is not None:
            card, enrichments = await self._enrich(current.card, user_context)
            current = current.model_copy(update={"card": card})
        else:
            enrichments = {}

        state = VerificationState.RESOLVED
        logger.info(f"[Verifier] {state.value} after {retry.attempt} retries")
        return VerificationResult(
            turn=current,
            state=state,
            attempts=retry.attempt,
            exclusions=excluded.as_list(),
            lookup=lookup,
            enrichments=enrichments,
        )

    def _degraded(
        self,
        turn: ParsedTurn,
        retry: RetryState,
        excluded: ExclusionSet,
        lookup: EnrichmentOutcome | None,
    ) -> VerificationResult:
        name = turn.card.name if turn.card else "That place"
        logger.warning(f"[Verifier] Degraded: dropping card for closed venue '{name}'")
        content = f"Note: {name} appears to be closed right now.\n\n{turn.content}"
        return VerificationResult(
            turn=ParsedTurn(content=content),
            state=VerificationState.DEGRADED,
            attempts=retry.attempt,
            exclusions=excluded.as_list(),
            lookup=lookup,
        )

    async def _guarded(
        self, label: str, awaitable: Awaitable[Any], timeout: float
    ) -> EnrichmentOutcome:
        try:
            value = await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Verifier] {label} timed out")
            return EnrichmentOutcome.absent("timeout")
        except Exception as e:
            logger.warning(f"[Verifier] {label} failed: {e}")
            return EnrichmentOutcome.absent(str(e) or type(e).__name__)

        if value is None:
            return EnrichmentOutcome.absent("not found")
        return EnrichmentOutcome.success(value)

    async def _lookup(
        self, card: RecommendationCard, user_context: UserContext
    ) -> EnrichmentOutcome:
        if self.places is None:
            return EnrichmentOutcome.absent("place lookup not configured")
        if not self.offline_gate.is_online():
            return EnrichmentOutcome.absent("offline")

        return await self._guarded(
            "Place lookup",
            asyncio.to_thread(self.places.search_place, card.name, user_context.location),
            self.settings.places_timeout_seconds,
        )

    async def _requery(
        self,
        messages: list[dict[str, Any]],
        excluded: ExclusionSet,
        llm: Any,
        user_context: UserContext,
    ) -> ParsedTurn | None:
        """The only path that re-enters the AI oracle."""
        retry_messages = [
            *messages,
            {"role": "user", "content": build_exclusion_instruction(excluded)},
        ]
        outcome = await self._guarded(
            "AI re-query",
            llm.chat_async(retry_messages, json_mode=self.settings.ai_strict_json),
            self.settings.ai_timeout_seconds,
        )
        if not outcome.ok:
            return None

        return parse_response(
            outcome.value,
            strict=self.settings.ai_strict_json,
            fallback_location=user_context.location,
        )

    async def _fetch_details(self, card: RecommendationCard) -> EnrichmentOutcome:
        if self.places is None:
            return EnrichmentOutcome.absent("place lookup not configured")
        if not card.place_id:
            return EnrichmentOutcome.absent("place not verified")
        if not self.offline_gate.is_online():
            return EnrichmentOutcome.absent("offline")

        return await self._guarded(
            "Place details",
            asyncio.to_thread(self.places.get_place_details, card.place_id),
            self.settings.places_timeout_seconds,
        )

    async def _fetch_distance(
        self, card: RecommendationCard, user_context: UserContext
    ) -> EnrichmentOutcome:
        if card.coordinates is None:
            return EnrichmentOutcome.absent("no coordinates")

        # The adapter applies its own oracle timeout; this bounds cache/synthesis too
        return await self._guarded(
            "Walking distance",
            self.route_adapter.route(user_context.location, card.coordinates, "WALK"),
            self.settings.routes_timeout_seconds + 1,
        )

    async def _enrich(
        self, card: RecommendationCard, user_context: UserContext
    ) -> tuple[RecommendationCard, dict[str, EnrichmentOutcome]]:
        details, distance = await asyncio.gather(
            self._fetch_details(card),
            self._fetch_distance(card, user_context),
        )

        photos = _photos_outcome(details, self.places)
        review_count = _review_count_outcome(details)

        updates: dict[str, Any] = {
            "photos": photos.value if photos.ok else [],
            "distance_label": None,
        }
        if review_count.ok:
            updates["review_count"] = review_count.value
        if distance.ok:
            route = distance.value
            updates["distance_label"] = format_walk_label(
                route.total_duration, approximate=route.source == "estimate"
            )
            logger.info(
                f"[Verifier] Walking time {route.total_duration} min ({route.source}), "
                f"AI guessed: {card.distance_label}"
            )

        enrichments = {
            "photos": photos,
            "review_count": review_count,
            "distance": distance,
        }
        return card.model_copy(update=updates), enrichments


def reconcile(card: RecommendationCard, match: PlaceMatch) -> RecommendationCard:
    """Overwrite the AI's guesses with place-lookup ground truth."""
    updates: dict[str, Any] = {
        "coordinates": match.coordinates,
        "address": match.address or card.address,
        "open_now": match.open_now,
        "place_id": match.place_id,
        "verified": True,
    }
    if match.hours:
        updates["hours"] = match.hours
    if match.rating is not None:
        updates["rating"] = match.rating
    if match.price_level is not None:
        updates["price_level"] = match.price_level
    return card.model_copy(update=updates)


def _photos_outcome(
    details: EnrichmentOutcome, places: PlacesService | None
) -> EnrichmentOutcome:
    if not details.ok:
        return EnrichmentOutcome.absent(details.error or "no details")
    names = details.value.photo_names[:MAX_PHOTOS]
    if not names or places is None:
        return EnrichmentOutcome.absent("no photos")
    return EnrichmentOutcome.success([places.get_proxy_photo_url(n) for n in names])


def _review_count_outcome(details: EnrichmentOutcome) -> EnrichmentOutcome:
    if not details.ok:
        return EnrichmentOutcome.absent(details.error or "no details")
    if details.value.review_count is None:
        return EnrichmentOutcome.absent("no review count")
    return EnrichmentOutcome.success(details.value.review_count)
