"""Tests for the freshness policy."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime

import pytest

from httpcachekit.cache.policy import freshness_ttl, parse_http_date

NOW = 1_700_000_000  # 2023-11-14 22:13:20 UTC


def _http_date(epoch: int) -> str:
    return format_datetime(datetime.fromtimestamp(epoch, tz=timezone.utc), usegmt=True)


# ------------------------------------------------------------------ #
# Cache-Control
# ------------------------------------------------------------------ #


class TestCacheControl:
    @pytest.mark.parametrize("value", ["no-cache", "no-store"])
    def test_uncacheable_directives(self, value: str) -> None:
        assert freshness_ttl({"Cache-Control": value}, now=NOW) is None

    @pytest.mark.parametrize("value", ["no-cache", "no-store"])
    def test_uncacheable_wins_over_expires(self, value: str) -> None:
        headers = {"Cache-Control": value, "Expires": _http_date(NOW + 3600)}
        assert freshness_ttl(headers, now=NOW) is None

    def test_max_age(self) -> None:
        assert freshness_ttl({"Cache-Control": "max-age=10"}, now=NOW) == 10

    def test_max_age_among_other_directives(self) -> None:
        headers = {"Cache-Control": "public, max-age=600, must-revalidate"}
        assert freshness_ttl(headers, now=NOW) == 600

    def test_max_age_overrides_expires(self) -> None:
        headers = {"Cache-Control": "max-age=10", "Expires": _http_date(NOW)}
        assert freshness_ttl(headers, now=NOW) == 10

    def test_max_age_zero(self) -> None:
        assert freshness_ttl({"Cache-Control": "max-age=0"}, now=NOW) == 0

    def test_no_cache_match_is_exact(self) -> None:
        """A combined directive is not the literal ``no-cache`` value."""
        headers = {"Cache-Control": "no-cache, max-age=30"}
        assert freshness_ttl(headers, now=NOW) == 30

    def test_no_cache_match_is_case_sensitive(self) -> None:
        ttl = freshness_ttl({"Cache-Control": "No-Cache"}, now=NOW)
        assert ttl is not None
        assert ttl > 0

    def test_list_values_are_joined(self) -> None:
        headers = {"Cache-Control": ["public", "max-age=42"]}
        assert freshness_ttl(headers, now=NOW) == 42

    def test_single_item_list_no_store(self) -> None:
        assert freshness_ttl({"Cache-Control": ["no-store"]}, now=NOW) is None

    def test_cache_control_without_max_age_falls_through_to_expires(self) -> None:
        headers = {"Cache-Control": "public", "Expires": _http_date(NOW + 120)}
        assert freshness_ttl(headers, now=NOW) == 120

    def test_header_name_is_literal(self) -> None:
        """Lower-case ``cache-control`` is not consulted."""
        ttl = freshness_ttl({"cache-control": "no-store"}, now=NOW)
        assert ttl is not None
        assert ttl > 0


# ------------------------------------------------------------------ #
# Expires
# ------------------------------------------------------------------ #


class TestExpires:
    def test_future_date(self) -> None:
        assert freshness_ttl({"Expires": _http_date(NOW + 20)}, now=NOW) == 20

    @pytest.mark.parametrize("value", ["2030-01-01T00:00:00Z", "2030-01-01 00:00:00"])
    def test_future_iso_date(self, value: str) -> None:
        expected = int(datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp()) - NOW
        assert freshness_ttl({"Expires": value}, now=NOW) == expected

    def test_past_date_clamped_to_zero(self) -> None:
        assert freshness_ttl({"Expires": _http_date(NOW - 10)}, now=NOW) == 0

    def test_now_is_zero(self) -> None:
        assert freshness_ttl({"Expires": _http_date(NOW)}, now=NOW) == 0

    @pytest.mark.parametrize("value", ["sometime", "", "0", "-1", "Thu, 99 Foo 20XX"])
    def test_malformed_date_is_zero(self, value: str) -> None:
        assert freshness_ttl({"Expires": value}, now=NOW) == 0

    def test_list_value_uses_first(self) -> None:
        headers = {"Expires": [_http_date(NOW + 30), _http_date(NOW + 90)]}
        assert freshness_ttl(headers, now=NOW) == 30

    def test_header_name_is_literal(self) -> None:
        ttl = freshness_ttl({"expires": _http_date(NOW - 10)}, now=NOW)
        assert ttl is not None
        assert ttl > 0


# ------------------------------------------------------------------ #
# Default lifetime
# ------------------------------------------------------------------ #


class TestDefault:
    def test_no_headers_one_year(self) -> None:
        # 2023-11-14 -> 2024-11-14 spans Feb 29 2024
        assert freshness_ttl({}, now=NOW) == 366 * 86400

    def test_unrelated_headers_one_year(self) -> None:
        headers = {"Content-Type": "text/html", "ETag": '"abc"'}
        assert freshness_ttl(headers, now=NOW) == 366 * 86400

    def test_leap_day_rolls_to_feb_28(self) -> None:
        leap_day = int(datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc).timestamp())
        expected = int(datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc).timestamp())
        assert freshness_ttl({}, now=leap_day) == expected - leap_day

    def test_now_defaults_to_current_time(self) -> None:
        ttl = freshness_ttl({"Cache-Control": "max-age=5"})
        assert ttl == 5


# ------------------------------------------------------------------ #
# Date parsing
# ------------------------------------------------------------------ #


class TestParseHttpDate:
    def test_rfc1123(self) -> None:
        assert parse_http_date("Tue, 14 Nov 2023 22:13:20 GMT") == NOW

    def test_numeric_offset(self) -> None:
        assert parse_http_date("Tue, 14 Nov 2023 23:13:20 +0100") == NOW

    @pytest.mark.parametrize(
        "value",
        [
            "2023-11-14T22:13:20Z",
            "2023-11-14T22:13:20+00:00",
            "2023-11-14T23:13:20+01:00",
            "2023-11-14 22:13:20",
        ],
    )
    def test_iso_8601(self, value: str) -> None:
        assert parse_http_date(value) == NOW

    def test_garbage(self) -> None:
        assert parse_http_date("not a date") is None
