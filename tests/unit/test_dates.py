"""Tests for date resolution."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from servers.event_harvester.pipeline.dates import localize, parse_date_text, resolve_date

PACIFIC = ZoneInfo("America/Los_Angeles")
NOW = datetime(2025, 8, 18, 10, 0, tzinfo=PACIFIC)


def resolve(text=None, value=None):
    return resolve_date(text, value, now=NOW, tz=PACIFIC)


class TestTypedValues:
    """Typed values from structured sources."""

    def test_aware_datetime_converted(self):
        utc = datetime(2025, 8, 22, 3, 0, tzinfo=timezone.utc)
        result = resolve(value=utc)
        assert result == utc
        assert result.tzinfo == PACIFIC
        assert result.hour == 20

    def test_naive_datetime_is_local(self):
        result = resolve(value=datetime(2025, 8, 21, 20, 0))
        assert result == datetime(2025, 8, 21, 20, 0, tzinfo=PACIFIC)

    def test_date_is_local_midnight(self):
        result = resolve(value=date(2025, 8, 21))
        assert result == datetime(2025, 8, 21, 0, 0, tzinfo=PACIFIC)

    def test_epoch_seconds_and_millis(self):
        seconds = datetime(2025, 8, 21, 20, 0, tzinfo=PACIFIC).timestamp()
        assert resolve(value=seconds) == datetime(2025, 8, 21, 20, 0, tzinfo=PACIFIC)
        assert resolve(value=seconds * 1000) == datetime(2025, 8, 21, 20, 0, tzinfo=PACIFIC)

    def test_value_wins_over_text(self):
        result = resolve(text="Aug 30", value=date(2025, 8, 21))
        assert result.day == 21

    def test_nothing_to_resolve(self):
        assert resolve() is None


class TestParseDateText:
    """Free-form date text."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2025-08-21T20:00:00", datetime(2025, 8, 21, 20, 0)),
            ("08/21/2025 8:00 PM", datetime(2025, 8, 21, 20, 0)),
            ("Thursday, August 21, 2025 at 7pm", datetime(2025, 8, 21, 19, 0)),
            ("Aug 21", datetime(2025, 8, 21, 0, 0)),
            ("Aug 21 - Aug 23", datetime(2025, 8, 21, 0, 0)),
        ],
    )
    def test_formats(self, text, expected):
        assert resolve(text=text) == expected.replace(tzinfo=PACIFIC)

    def test_explicit_offset_kept_as_instant(self):
        result = resolve(text="2025-08-21T20:00:00-04:00")
        assert result == datetime(2025, 8, 21, 17, 0, tzinfo=PACIFIC)

    def test_relative_words(self):
        assert resolve(text="Tonight 8pm") == datetime(2025, 8, 18, 20, 0, tzinfo=PACIFIC)
        assert resolve(text="Tomorrow at 7:30 PM") == datetime(2025, 8, 19, 19, 30, tzinfo=PACIFIC)
        assert resolve(text="today") == datetime(2025, 8, 18, 0, 0, tzinfo=PACIFIC)

    def test_year_less_date_rolls_over(self):
        """A December reference makes "Jan 3" mean next January."""
        december = datetime(2025, 12, 28, 12, 0, tzinfo=PACIFIC)
        result = parse_date_text("Jan 3", now=december, tz=PACIFIC)
        assert result == datetime(2026, 1, 3, 0, 0, tzinfo=PACIFIC)

    def test_year_less_date_within_grace_not_rolled(self):
        result = parse_date_text(
            "Aug 17 8pm", now=NOW, tz=PACIFIC, rollover_before=timedelta(days=1)
        )
        assert result.year == 2025

    def test_explicit_past_year_kept(self):
        assert resolve(text="Jan 3, 2025").year == 2025

    def test_epoch_text(self):
        result = resolve(text="1755831600")
        assert result == datetime.fromtimestamp(1755831600, tz=PACIFIC)

    @pytest.mark.parametrize("text", ["", "   ", "see website for details"])
    def test_unparseable(self, text):
        assert resolve(text=text) is None

    def test_out_of_range_after_conversion(self):
        """Parses fine, but lands past year 9999 in the reference zone."""
        assert resolve(text="9999-12-31T23:00:00-12:00") is None

    def test_rollover_past_max_year(self):
        december = datetime(9999, 12, 30, 12, 0, tzinfo=PACIFIC)
        assert parse_date_text("Dec 1 8pm", now=december, tz=PACIFIC) is None

    def test_out_of_range_typed_value(self):
        edge = datetime(9999, 12, 31, 23, 0, tzinfo=timezone(timedelta(hours=-12)))
        assert resolve(value=edge) is None


class TestLocalize:
    def test_naive_gets_zone(self):
        assert localize(datetime(2025, 8, 21), PACIFIC).tzinfo == PACIFIC

    def test_aware_is_converted(self):
        result = localize(datetime(2025, 8, 21, 12, tzinfo=timezone.utc), PACIFIC)
        assert result.hour == 5
