import time

from wayfinder.core.offline_gate import InMemoryOfflineGate
from wayfinder.core.schemas import Coordinates

from tests.fakes import SHIBUYA, live_walk

NEARBY = Coordinates(latitude=35.6601, longitude=139.7011)


def test_queue_keeps_arrival_order_and_drains():
    gate = InMemoryOfflineGate(online=False)
    gate.queue_message("first")
    gate.queue_message("second", attachment="aGVsbG8=")

    queued = gate.queued_messages()
    assert [m.content for m in queued] == ["first", "second"]
    assert queued[1].image == "aGVsbG8="
    assert queued[0].id.startswith("queued-")

    drained = gate.drain_queue()
    assert [m.content for m in drained] == ["first", "second"]
    assert gate.queued_messages() == []


def test_remove_from_queue():
    gate = InMemoryOfflineGate()
    gate.queue_message("keep")
    gate.queue_message("drop")
    drop_id = gate.queued_messages()[1].id
    gate.remove_from_queue(drop_id)
    assert [m.content for m in gate.queued_messages()] == ["keep"]


def test_route_cache_rounds_coordinates_and_mode():
    gate = InMemoryOfflineGate(precision=3)
    gate.cache_route(SHIBUYA, NEARBY, "WALK", live_walk())

    close_origin = Coordinates(latitude=35.65951, longitude=139.70042)
    assert gate.get_cached_route(close_origin, NEARBY, "WALK") is not None
    assert gate.get_cached_route(SHIBUYA, NEARBY, "DRIVE") is None
    assert gate.get_cached_route(NEARBY, SHIBUYA, "WALK") is None


def test_expired_routes_are_evicted(monkeypatch):
    gate = InMemoryOfflineGate(route_ttl_minutes=60)
    gate.cache_route(SHIBUYA, NEARBY, "WALK", live_walk())

    later = time.time() + 61 * 60
    monkeypatch.setattr("wayfinder.core.offline_gate.time.time", lambda: later)
    assert gate.get_cached_route(SHIBUYA, NEARBY, "WALK") is None


def test_set_online_and_clear_all():
    gate = InMemoryOfflineGate(online=False)
    assert gate.is_online() is False
    gate.set_online(True)
    assert gate.is_online() is True
    assert gate.last_online_at is not None

    gate.queue_message("hi")
    gate.cache_route(SHIBUYA, NEARBY, "WALK", live_walk())
    gate.clear_all()
    assert gate.queued_messages() == []
    assert gate.get_cached_route(SHIBUYA, NEARBY, "WALK") is None
