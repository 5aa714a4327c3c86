"""
Decode raw conversational-AI output into a structured turn.

The oracle is asked to answer with a JSON object of the shape
``{"text": ..., "recommendation": {...} | null, "showMap": bool, "actions": [...]}``.
Anything that cannot be decoded into that shape is returned as plain text.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from wayfinder.core.schemas import Action, Coordinates, ParsedTurn, RecommendationCard

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    """Strip markdown code fences from LLM output."""
    s = text.strip()
    if s.startswith("```"):
        body = s.lstrip("`")
        if body.lower().startswith("json"):
            body = body[4:]
        body = body.lstrip("\n ")
        if body.endswith("```"):
            body = body[:-3]
        return body.strip()
    return s


def parse_response(
    raw_text: str,
    strict: bool = True,
    fallback_location: Coordinates | None = None,
) -> ParsedTurn:
    """
    Parse one AI reply. Never raises.

    Args:
        raw_text: The oracle's reply exactly as received
        strict: True when the oracle runs in JSON-object mode; fences are only
            stripped when it does not
        fallback_location: Used as card coordinates when the AI omits them

    Returns:
        ParsedTurn; on any decode failure ``ParsedTurn(content=raw_text)``
    """
    if raw_text is None:
        raw_text = ""

    candidate = raw_text.strip() if strict else strip_code_fences(raw_text)

    try:
        data = json.loads(candidate)
    except (ValueError, TypeError) as e:
        logger.warning(f"[Parser] Reply is not valid JSON, using raw text: {e}")
        return ParsedTurn(content=raw_text)

    if not isinstance(data, dict):
        logger.warning("[Parser] Reply decoded to a non-object, using raw text")
        return ParsedTurn(content=raw_text)

    try:
        return _build_turn(data, raw_text, fallback_location)
    except (ValidationError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"[Parser] Reply has an unexpected shape, using raw text: {e}")
        return ParsedTurn(content=raw_text)


def _build_turn(
    data: dict[str, Any], raw_text: str, fallback_location: Coordinates | None
) -> ParsedTurn:
    text = data.get("text")
    content = text if isinstance(text, str) and text.strip() else raw_text

    raw_card = data.get("recommendation")
    if raw_card is None:
        raw_card = data.get("placeCard")
    card = _build_card(raw_card, fallback_location)

    # A map is only honored when there is something to put on it
    map_requested = (
        data.get("showMap") is True and card is not None and card.coordinates is not None
    )

    actions: list[Action] = []
    raw_actions = data.get("actions")
    if isinstance(raw_actions, list):
        for item in raw_actions:
            if (
                isinstance(item, dict)
                and isinstance(item.get("label"), str)
                and isinstance(item.get("type"), str)
            ):
                actions.append(Action(label=item["label"], type=item["type"]))

    turn = ParsedTurn(
        content=content, card=card, map_requested=map_requested, actions=actions
    )
    logger.debug(
        f"[Parser] Parsed reply: card={bool(card)}, map={map_requested}, "
        f"actions={len(actions)}"
    )
    return turn


def _build_card(
    raw: Any, fallback_location: Coordinates | None
) -> RecommendationCard | None:
    if not isinstance(raw, dict):
        return None

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    coordinates = _coerce_coordinates(raw.get("coordinates")) or fallback_location

    address = raw.get("address")
    hours = raw.get("hours")
    open_now = raw.get("openNow")
    distance = raw.get("distance")
    cost = raw.get("estimatedCost")

    return RecommendationCard(
        name=name.strip(),
        address=address if isinstance(address, str) else "",
        coordinates=coordinates,
        rating=_coerce_rating(raw.get("rating")),
        price_level=_coerce_price_level(raw.get("priceLevel")),
        open_now=open_now if isinstance(open_now, bool) else None,
        hours=hours if isinstance(hours, str) else None,
        estimated_cost=str(cost) if isinstance(cost, (str, int, float)) else None,
        distance_label=distance if isinstance(distance, str) else None,
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_coordinates(raw: Any) -> Coordinates | None:
    """Accept only a complete, in-range pair; anything partial is dropped."""
    if not isinstance(raw, dict):
        return None
    lat = raw.get("latitude", raw.get("lat"))
    lng = raw.get("longitude", raw.get("lng"))
    if not (_is_number(lat) and _is_number(lng)):
        return None
    try:
        return Coordinates(latitude=lat, longitude=lng)
    except ValidationError:
        return None


def _coerce_rating(value: Any) -> float | None:
    if _is_number(value) and 0 <= value <= 5:
        return float(value)
    return None


def _coerce_price_level(value: Any) -> int | None:
    if _is_number(value) and float(value).is_integer() and 1 <= value <= 4:
        return int(value)
    return None
