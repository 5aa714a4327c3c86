import asyncio

import pytest

from wayfinder.core.companion import (
    OFFLINE_ACK,
    UNAVAILABLE_MESSAGE,
    CompanionChat,
    build_system_prompt,
)
from wayfinder.core.errors import ConfigurationError
from wayfinder.core.recommendation_verifier import RecommendationVerifier
from wayfinder.core.route_adapter import RoutingOracleAdapter
from wayfinder.core.schemas import HistoryMessage

from tests.fakes import FakeLLM, FakePlaces, FakeRoutes, ai_reply, live_walk, place_match

CAFE_X = place_match("Cafe X", 35.6600, 139.7000, open_now=False)
CAFE_Y = place_match("Cafe Y", 35.6610, 139.7010, open_now=True)


def _companion(settings, gate, llm, places=None):
    adapter = RoutingOracleAdapter(FakeRoutes(directions=live_walk(duration=3)), gate, settings)
    verifier = RecommendationVerifier(places or FakePlaces(), adapter, gate, settings)
    return CompanionChat(settings, gate, verifier, llm=llm)


@pytest.mark.asyncio
async def test_offline_turn_is_queued_once(settings, gate, user_context):
    llm = FakeLLM([])
    gate.set_online(False)
    companion = _companion(settings, gate, llm)

    result = await companion.handle_turn("Where can I get ramen?", user_context, image="aW1n")

    assert result.status == "offline"
    assert result.content == OFFLINE_ACK
    assert llm.calls == []
    queued = gate.queued_messages()
    assert [m.content for m in queued] == ["Where can I get ramen?"]
    assert queued[0].image == "aW1n"


@pytest.mark.asyncio
async def test_verified_recommendation_with_map(settings, gate, user_context):
    places = FakePlaces(matches={"Cafe X": CAFE_X, "Cafe Y": CAFE_Y})
    llm = FakeLLM([ai_reply("Cafe X"), ai_reply("Cafe Y", text="Cafe Y is open.")])
    companion = _companion(settings, gate, llm, places)

    result = await companion.handle_turn("coffee nearby?", user_context)

    assert result.status == "resolved"
    assert result.card.name == "Cafe Y"
    assert result.card.distance_label == "3 min walk"
    assert result.map_request.center == CAFE_Y.coordinates
    assert result.map_request.markers[0].id == "destination"
    assert result.map_request.markers[0].title == "Cafe Y"
    assert len(llm.calls) == 2


@pytest.mark.asyncio
async def test_degraded_turn_has_no_card_map_or_actions(settings, gate, user_context):
    places = FakePlaces(matches={"Cafe X": CAFE_X})
    llm = FakeLLM([ai_reply("Cafe X")] * 4)
    companion = _companion(settings, gate, llm, places)

    result = await companion.handle_turn("coffee?", user_context)

    assert result.status == "degraded"
    assert result.card is None
    assert result.map_request is None
    assert result.actions == []
    assert len(llm.calls) == settings.max_verification_retries + 1


@pytest.mark.asyncio
async def test_plain_text_reply(settings, gate, user_context):
    companion = _companion(settings, gate, FakeLLM(["Arigato means thank you."]))
    result = await companion.handle_turn("How do I say thanks?", user_context)
    assert result.status == "resolved"
    assert result.content == "Arigato means thank you."
    assert result.card is None


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [RuntimeError("503"), asyncio.TimeoutError()])
async def test_ai_failure_is_apologetic(settings, gate, user_context, error):
    companion = _companion(settings, gate, FakeLLM([error]))
    result = await companion.handle_turn("hi", user_context)
    assert result.status == "unavailable"
    assert result.content == UNAVAILABLE_MESSAGE


@pytest.mark.asyncio
async def test_missing_credentials_is_config_error(settings, gate, user_context, monkeypatch):
    def broken_provider(model):
        raise ConfigurationError("OPENAI_API_KEY is not set")

    monkeypatch.setattr("wayfinder.core.companion.LLMProvider", broken_provider)
    companion = _companion(settings, gate, llm=None)

    result = await companion.handle_turn("hi", user_context)

    assert result.status == "config_error"
    assert "OPENAI_API_KEY" in result.content


@pytest.mark.asyncio
async def test_replay_queued_messages_in_order(settings, gate, user_context):
    llm = FakeLLM(["first answer", "second answer"])
    companion = _companion(settings, gate, llm)
    gate.set_online(False)
    await companion.handle_turn("first", user_context)
    await companion.handle_turn("second", user_context)

    assert await companion.replay_queued(user_context) == []

    gate.set_online(True)
    results = await companion.replay_queued(user_context)

    assert [r.content for r in results] == ["first answer", "second answer"]
    assert gate.queued_messages() == []
    # The second replayed turn sees the first one as history
    assert llm.calls[1][-2] == {"role": "assistant", "content": "first answer"}


def test_build_messages_limits_history_and_attaches_image(settings, gate, user_context):
    settings.chat_history_limit = 2
    companion = CompanionChat(settings, gate, llm=FakeLLM([]))
    history = [HistoryMessage(role="user", content=f"m{i}") for i in range(5)]

    messages = companion.build_messages("what is this?", user_context, history, image="aW1n")

    assert messages[0]["role"] == "system"
    assert [m["content"] for m in messages[1:3]] == ["m3", "m4"]
    image_part, text_part = messages[-1]["content"]
    assert image_part["image_url"]["url"] == "data:image/jpeg;base64,aW1n"
    assert text_part == {"type": "text", "text": "what is this?"}


def test_system_prompt_carries_context(user_context):
    prompt = build_system_prompt(user_context)
    assert "Shibuya" in prompt
    assert "7:45 PM" in prompt
    assert "VEGETARIAN" in prompt
    assert '"recommendation"' in prompt
    assert '"showMap"' in prompt
