"""Tests for JSON feed item mapping."""

import pytest

from servers.event_harvester.sources import AdapterParseError
from servers.event_harvester.sources.json_feed import items_to_candidates, resolve_path


@pytest.fixture
def tribe_response() -> dict:
    """Shape of a WordPress events-calendar REST response."""
    return {
        "events": [
            {
                "title": "Trivia Night",
                "start_date": "2025-08-20 19:00:00",
                "end_date": "2025-08-20 21:00:00",
                "venue": {"venue": "Zeitgeist", "address": "199 Valencia St"},
                "cost": "Free",
                "url": "https://bar.example.com/event/trivia",
                "image": {"url": "https://bar.example.com/trivia.png"},
            },
            {"title": "Karaoke", "start_date": "2025-08-21 21:00:00", "venue": []},
            "not an object",
        ],
        "total": 2,
    }


class TestItemsToCandidates:
    """Tests for items_to_candidates."""

    def test_default_fields(self, tribe_response):
        candidates = items_to_candidates(tribe_response, items_path="events")

        assert len(candidates) == 2
        trivia = candidates[0]
        assert trivia.title == "Trivia Night"
        assert trivia.date_text == "2025-08-20 19:00:00"
        assert trivia.end_text == "2025-08-20 21:00:00"
        assert trivia.location == "Zeitgeist"
        assert trivia.price == "Free"
        assert trivia.image_url == "https://bar.example.com/trivia.png"
        assert candidates[1].location is None

    def test_custom_fields(self):
        data = {"data": {"games": [{"home": {"name": "SF Giants vs Dodgers"}, "gameDate": 1755824400}]}}

        candidates = items_to_candidates(
            data,
            items_path="data.games",
            fields={"title": "home.name", "date_text": "gameDate"},
        )

        assert candidates[0].title == "SF Giants vs Dodgers"
        assert candidates[0].date_text == "1755824400"

    def test_root_list(self):
        candidates = items_to_candidates([{"title": "Book Club", "start_date": "Aug 22"}])
        assert candidates[0].title == "Book Club"

    def test_path_not_a_list(self, tribe_response):
        with pytest.raises(AdapterParseError):
            items_to_candidates(tribe_response, items_path="total")

    def test_missing_path(self, tribe_response):
        with pytest.raises(AdapterParseError):
            items_to_candidates(tribe_response, items_path="results")


class TestResolvePath:
    def test_dicts_and_indexes(self):
        data = {"a": [{"b": "x"}, {"b": "y"}]}
        assert resolve_path(data, "a.1.b") == "y"

    def test_out_of_range(self):
        assert resolve_path({"a": []}, "a.0") is None

    def test_through_scalar(self):
        assert resolve_path({"a": "text"}, "a.b") is None
