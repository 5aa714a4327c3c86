"""
Conversation turn orchestration for the travel companion.

One turn: offline check, AI oracle call, structured parse, verification loop,
map request. Every failure ends in an explicit TurnResult status instead of an
exception.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from wayfinder.core.errors import ConfigurationError
from wayfinder.core.llm_provider import LLMProvider
from wayfinder.core.offline_gate import InMemoryOfflineGate, OfflineGate
from wayfinder.core.recommendation_verifier import (
    RecommendationVerifier,
    VerificationState,
)
from wayfinder.core.response_parser import parse_response
from wayfinder.core.schemas import (
    HistoryMessage,
    MapMarker,
    MapRequest,
    ParsedTurn,
    TurnResult,
    UserContext,
)
from wayfinder.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

OFFLINE_ACK = (
    "I'm offline right now. I've saved your message and will respond "
    "when you're back online."
)
UNAVAILABLE_MESSAGE = (
    "Sorry, I'm having trouble responding right now. Please try again in a moment."
)

RESPONSE_FORMAT = """RESPONSE FORMAT (ALWAYS respond with valid JSON):

{
  "text": "Your conversational response here (NO markdown, just plain text)",
  "recommendation": null OR {
    "name": "Place Name",
    "address": "Full address",
    "rating": 4.5,
    "priceLevel": 2,
    "distance": "8 min walk",
    "openNow": true,
    "hours": "9 AM - 10 PM",
    "estimatedCost": "1200 JPY",
    "coordinates": {"latitude": 35.6595, "longitude": 139.7004}
  },
  "showMap": true/false,
  "actions": [] OR [
    {"label": "Take me there", "type": "navigate"},
    {"label": "Something else", "type": "regenerate"}
  ]
}"""


def build_system_prompt(user_context: UserContext, now: Optional[datetime] = None) -> str:
    """Build the companion system prompt from the user's current situation."""
    now = now or datetime.now()
    local_time = user_context.local_time or now.strftime("%I:%M %p").lstrip("0")
    local_date = now.strftime("%A, %b %d")
    area = user_context.neighborhood or "the area"

    context_lines = [
        f"- Location: {user_context.neighborhood or 'Unknown location'} "
        f"({user_context.location.latitude:.4f}, {user_context.location.longitude:.4f})",
        f"- Local time: {local_time} ({user_context.time_of_day or 'unknown'}) on {local_date}",
    ]
    if user_context.weather or user_context.temperature is not None:
        temperature = (
            f"{user_context.temperature:g}°" if user_context.temperature is not None else "?°"
        )
        context_lines.append(f"- Weather: {user_context.weather or 'unknown'}, {temperature}")
    if user_context.budget_remaining is not None:
        context_lines.append(f"- Budget remaining today: {user_context.budget_remaining:g}")
    if user_context.budget_level:
        context_lines.append(f"- Budget level: {user_context.budget_level}")
    if user_context.walking_minutes_today is not None:
        context_lines.append(f"- Walking today: {user_context.walking_minutes_today} minutes")
    if user_context.interests:
        context_lines.append(f"- Interests: {', '.join(user_context.interests)}")
    if user_context.avoid_crowds:
        context_lines.append("- Prefers: Less crowded, off-the-beaten-path places")

    dietary_rule = ""
    if user_context.dietary:
        dietary = ", ".join(user_context.dietary).upper()
        context_lines.append(
            f"- DIETARY RESTRICTIONS: {dietary} - YOU MUST respect these when suggesting food!"
        )
        dietary_rule = (
            f"6. DIETARY: User is {dietary} - NEVER suggest places that cannot accommodate this\n"
        )

    context_text = "\n".join(context_lines)

    return f"""You are a friendly travel companion who can help with anything, with special awareness of the user's location, time, weather and budget.

CURRENT CONTEXT:
{context_text}

CRITICAL RULES:
1. When suggesting places: ONLY suggest places that are OPEN right now (it's {local_time})
2. Do NOT use markdown formatting
3. Use LOCAL CURRENCY for all prices
4. Be conversational, warm and concise like a knowledgeable local friend
5. Use REAL places that actually exist in {area}, with accurate GPS coordinates
{dietary_rule}
{RESPONSE_FORMAT}

WHEN TO INCLUDE recommendation:
- Restaurant, cafe, bar, attraction recommendations: include it with real place data
- General questions, tips, translations, advice: set it to null
- priceLevel: 1=cheap, 2=moderate, 3=expensive, 4=luxury"""


class CompanionChat:
    """Handles one conversation turn at a time against the configured oracles."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        offline_gate: Optional[OfflineGate] = None,
        verifier: Optional[RecommendationVerifier] = None,
        llm: Any = None,
    ):
        self.settings = settings or get_settings()
        self.offline_gate = offline_gate or InMemoryOfflineGate()
        self.verifier = verifier
        self._llm = llm

    def _get_llm(self) -> Any:
        # Created lazily so a missing key surfaces per turn, not at startup
        if self._llm is None:
            self._llm = LLMProvider(model=self.settings.aisuite_model)
        return self._llm

    def build_messages(
        self,
        message: str,
        user_context: UserContext,
        history: Optional[list[HistoryMessage]] = None,
        image: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Assemble the chat messages for one turn.

        Args:
            message: The user's new message
            user_context: Current situational context
            history: Prior turns, oldest first; only the most recent are sent
            image: Optional base64-encoded JPEG attached to this turn
        """
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(user_context)}
        ]
        limit = self.settings.chat_history_limit
        recent = (history or [])[-limit:] if limit > 0 else []
        messages.extend({"role": m.role, "content": m.content} for m in recent)

        if image:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{image}"},
                        },
                        {"type": "text", "text": message},
                    ],
                }
            )
        else:
            messages.append({"role": "user", "content": message})
        return messages

    async def handle_turn(
        self,
        message: str,
        user_context: UserContext,
        history: Optional[list[HistoryMessage]] = None,
        image: Optional[str] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> TurnResult:
        """
        Run a full conversation turn. Never raises for oracle failures.

        Returns:
            TurnResult whose status is one of resolved, degraded, offline,
            unavailable or config_error
        """
        if not self.offline_gate.is_online():
            self.offline_gate.queue_message(message, image)
            return TurnResult(content=OFFLINE_ACK, status="offline")

        try:
            llm = self._get_llm()
        except ConfigurationError as e:
            logger.error(f"[Companion] AI oracle not configured: {e}")
            return TurnResult(content=_config_message(e), status="config_error")

        messages = self.build_messages(message, user_context, history, image)

        try:
            raw = await llm.chat_async(
                messages,
                json_mode=self.settings.ai_strict_json,
                timeout=self.settings.ai_timeout_seconds,
            )
        except ConfigurationError as e:
            logger.error(f"[Companion] AI oracle not configured: {e}")
            return TurnResult(content=_config_message(e), status="config_error")
        except Exception as e:
            logger.error(f"[Companion] AI oracle failed: {e!r}")
            return TurnResult(content=UNAVAILABLE_MESSAGE, status="unavailable")

        turn = parse_response(
            raw,
            strict=self.settings.ai_strict_json,
            fallback_location=user_context.location,
        )

        if self.verifier is None:
            return _to_result(turn, "resolved")

        result = await self.verifier.verify(
            turn, user_context, messages, llm, is_cancelled=is_cancelled
        )
        status = "degraded" if result.state == VerificationState.DEGRADED else "resolved"
        return _to_result(result.turn, status)

    async def replay_queued(
        self,
        user_context: UserContext,
        history: Optional[list[HistoryMessage]] = None,
    ) -> list[TurnResult]:
        """
        Resend messages queued while offline, in arrival order.

        A message that hits a lost connection again is re-queued by handle_turn.
        """
        if not self.offline_gate.is_online():
            return []
        queued = self.offline_gate.drain_queue()
        if queued:
            logger.info(f"[Companion] Replaying {len(queued)} queued messages")

        history = list(history or [])
        results = []
        for item in queued:
            result = await self.handle_turn(item.content, user_context, history, item.image)
            results.append(result)
            history.append(HistoryMessage(role="user", content=item.content))
            history.append(HistoryMessage(role="assistant", content=result.content))
        return results


def build_map_request(turn: ParsedTurn) -> Optional[MapRequest]:
    """Map centered on the recommended place, or None when no map applies."""
    card = turn.card
    if not turn.map_requested or card is None or card.coordinates is None:
        return None
    return MapRequest(
        center=card.coordinates,
        markers=[MapMarker(id="destination", coordinate=card.coordinates, title=card.name)],
    )


def _to_result(turn: ParsedTurn, status: str) -> TurnResult:
    return TurnResult(
        content=turn.content,
        card=turn.card,
        map_request=build_map_request(turn),
        actions=turn.actions,
        status=status,
    )


def _config_message(error: ConfigurationError) -> str:
    return f"The AI assistant is not configured: {error}. Please check your .env file."
