import pytest
import requests

from wayfinder.core.errors import ConfigurationError
from wayfinder.core.places_service import PlacesService, map_price_level, to_place_match
from wayfinder.core.schemas import Coordinates

from tests.fakes import SHIBUYA

PLACE = {
    "id": "ChIJfuglen",
    "displayName": {"text": "Fuglen Tokyo"},
    "formattedAddress": "1-16-11 Tomigaya, Shibuya City, Tokyo",
    "location": {"latitude": 35.6685, "longitude": 139.6929},
    "rating": 4.4,
    "priceLevel": "PRICE_LEVEL_MODERATE",
    "userRatingCount": 2310,
    "regularOpeningHours": {
        "openNow": False,
        "weekdayDescriptions": ["Monday: 7:00 AM - 10:00 PM", "Tuesday: 7:00 AM - 1:00 AM"],
    },
    "photos": [{"name": "places/ChIJfuglen/photos/abc"}],
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


def test_map_price_level():
    assert map_price_level("PRICE_LEVEL_FREE") == 1
    assert map_price_level("PRICE_LEVEL_INEXPENSIVE") == 1
    assert map_price_level("PRICE_LEVEL_VERY_EXPENSIVE") == 4
    assert map_price_level("PRICE_LEVEL_UNSPECIFIED") is None
    assert map_price_level(None) is None


def test_to_place_match():
    match = to_place_match(PLACE)
    assert match.place_id == "ChIJfuglen"
    assert match.name == "Fuglen Tokyo"
    assert match.coordinates == Coordinates(latitude=35.6685, longitude=139.6929)
    assert match.open_now is False
    assert match.price_level == 2
    assert match.review_count == 2310
    assert match.hours.startswith("Monday: 7:00 AM")
    assert match.photo_names == ["places/ChIJfuglen/photos/abc"]


def test_to_place_match_without_location():
    assert to_place_match({"id": "x", "displayName": {"text": "Nowhere"}}) is None


def test_search_place_biases_around_user(monkeypatch):
    seen = {}

    def fake_post(url, headers, json, timeout):
        seen.update(url=url, headers=headers, body=json, timeout=timeout)
        return FakeResponse(payload={"places": [PLACE]})

    monkeypatch.setattr("wayfinder.core.places_service.requests.post", fake_post)
    service = PlacesService("key", timeout=3)

    match = service.search_place("Fuglen Tokyo", SHIBUYA)

    assert match.name == "Fuglen Tokyo"
    assert seen["url"].endswith("/places:searchText")
    assert seen["body"]["maxResultCount"] == 1
    assert seen["body"]["locationBias"]["circle"]["radius"] == 5000
    assert seen["body"]["locationBias"]["circle"]["center"]["latitude"] == 35.6595
    assert "places.userRatingCount" in seen["headers"]["X-Goog-FieldMask"]
    assert seen["timeout"] == 3


def test_search_place_no_match(monkeypatch):
    monkeypatch.setattr(
        "wayfinder.core.places_service.requests.post",
        lambda *a, **kw: FakeResponse(payload={}),
    )
    assert PlacesService("key").search_place("Atlantis", SHIBUYA) is None


def test_place_details_not_found(monkeypatch):
    monkeypatch.setattr(
        "wayfinder.core.places_service.requests.get",
        lambda *a, **kw: FakeResponse(status_code=404),
    )
    assert PlacesService("key").get_place_details("missing") is None


def test_photo_urls():
    service = PlacesService("secret")
    direct = service.get_place_photo_url("places/a/photos/b", max_width=400)
    assert direct.endswith("/places/a/photos/b/media?maxWidthPx=400&key=secret")

    proxied = service.get_proxy_photo_url("places/a/photos/b")
    assert proxied == "/places/photo?ref=places%2Fa%2Fphotos%2Fb&w=600"
    assert "secret" not in proxied
    assert service.get_proxy_photo_url("") is None


def test_missing_key():
    with pytest.raises(ConfigurationError):
        PlacesService(None)
