"""Tests for candidate validation checks."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from servers.event_harvester.config.settings import DEFAULT_BLACKLIST, DEFAULT_SECTION_TITLES
from servers.event_harvester.models import RawCandidate, RejectReason
from servers.event_harvester.pipeline.validation import (
    MAX_TITLE_LENGTH,
    check_blacklist,
    check_presence,
    check_title_shape,
    check_window,
    clean_title,
)

PACIFIC = ZoneInfo("America/Los_Angeles")


class TestPresence:
    """Title and date are required."""

    def test_missing_title(self):
        verdict = check_presence(RawCandidate(date_text="Aug 21"))
        assert verdict.reason == RejectReason.MISSING_FIELD
        assert verdict.detail == "title"

    def test_whitespace_title(self):
        verdict = check_presence(RawCandidate(title=" \n ", date_text="Aug 21"))
        assert verdict.reason == RejectReason.MISSING_FIELD

    def test_missing_date(self):
        verdict = check_presence(RawCandidate(title="Live Show"))
        assert verdict.detail == "date"

    def test_complete(self):
        assert check_presence(RawCandidate(title="Live Show", date_text="Aug 21")).accepted


class TestTitleShape:
    """Length bounds and text content."""

    @pytest.mark.parametrize("title", ["Jazz", "x" * (MAX_TITLE_LENGTH + 1), "12/08 -- 7:30", "***!!!"])
    def test_rejected(self, title):
        verdict = check_title_shape(title)
        assert verdict.accepted is False
        assert verdict.reason == RejectReason.TITLE_SHAPE

    @pytest.mark.parametrize("title", ["Yoga!", "Live Show", "x" * MAX_TITLE_LENGTH])
    def test_accepted(self, title):
        assert check_title_shape(title).accepted

    def test_clean_title_collapses_whitespace(self):
        assert clean_title("  Live\n   Show ") == "Live Show"


class TestBlacklist:
    """Generic page text is rejected."""

    def test_cookies_policy(self):
        verdict = check_blacklist("Cookies Policy", DEFAULT_BLACKLIST, DEFAULT_SECTION_TITLES)
        assert verdict.reason == RejectReason.GENERIC_TITLE

    def test_substring_match_is_case_insensitive(self):
        verdict = check_blacklist("Read our PRIVACY POLICY", ["privacy policy"])
        assert verdict.accepted is False

    def test_section_title_matches_whole_title_only(self):
        sections = ["Mission Bay"]
        assert check_blacklist("mission bay", [], sections).accepted is False
        assert check_blacklist("Mission Bay Story Time", [], sections).accepted is True

    def test_real_event_passes(self):
        assert check_blacklist("Live Show", DEFAULT_BLACKLIST, DEFAULT_SECTION_TITLES).accepted


class TestWindow:
    """now - grace <= start <= now + forward."""

    now = datetime(2025, 8, 18, 10, 0, tzinfo=PACIFIC)
    grace = timedelta(hours=24)
    forward = timedelta(days=14)

    def check(self, start):
        return check_window(start, self.now, self.grace, self.forward)

    def test_inside(self):
        assert self.check(datetime(2025, 8, 21, 20, 0, tzinfo=PACIFIC)).accepted

    def test_too_far_ahead(self):
        verdict = self.check(datetime(2025, 9, 20, tzinfo=PACIFIC))
        assert verdict.reason == RejectReason.OUT_OF_WINDOW

    def test_too_old(self):
        verdict = self.check(self.now - timedelta(hours=25))
        assert verdict.reason == RejectReason.OUT_OF_WINDOW
        assert verdict.detail == "past"

    def test_boundaries_inclusive(self):
        assert self.check(self.now - self.grace).accepted
        assert self.check(self.now + self.forward).accepted
