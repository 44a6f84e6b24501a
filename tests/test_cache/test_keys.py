"""Tests for cache key canonicalisation and blob helpers."""

from __future__ import annotations

import httpx
import pytest

from httpcachekit.cache.keys import (
    build_response,
    canonical_params,
    header_mapping,
    header_pairs,
    pack_body,
    pack_headers,
    unpack_body,
    unpack_headers,
)
from httpcachekit.exceptions import CacheStoreError


# ------------------------------------------------------------------ #
# canonical_params
# ------------------------------------------------------------------ #


class TestCanonicalParams:
    def test_none_is_empty(self) -> None:
        assert canonical_params(None) == ""

    def test_empty_mapping_is_empty(self) -> None:
        assert canonical_params({}) == ""

    def test_flat_mapping(self) -> None:
        assert canonical_params({"param": "value"}) == "param=value"

    def test_order_independent(self) -> None:
        assert canonical_params({"a": "1", "b": "2"}) == canonical_params({"b": "2", "a": "1"})

    def test_keys_sorted(self) -> None:
        assert canonical_params({"z": "1", "a": "2"}) == "a=2&z=1"

    def test_list_values_expand_in_order(self) -> None:
        assert canonical_params({"param": ["one", "two"]}) == "param=one&param=two"

    def test_list_order_is_significant(self) -> None:
        assert canonical_params({"p": ["one", "two"]}) != canonical_params({"p": ["two", "one"]})

    def test_values_are_url_encoded(self) -> None:
        assert canonical_params({"q": "a b&c"}) == "q=a+b%26c"

    def test_scalar_rendering_matches_httpx(self) -> None:
        assert canonical_params({"t": True, "f": False, "n": None, "i": 3}) == "f=false&i=3&n=&t=true"

    @pytest.mark.parametrize("raw", ["raw body", b"raw bytes"])
    def test_raw_body_is_empty(self, raw) -> None:
        assert canonical_params(raw) == ""

    def test_nested_mapping_is_empty(self) -> None:
        assert canonical_params({"outer": {"inner": "x"}}) == ""

    def test_nested_list_is_empty(self) -> None:
        assert canonical_params({"outer": [{"inner": "x"}]}) == ""


# ------------------------------------------------------------------ #
# Header mapping
# ------------------------------------------------------------------ #


class TestHeaderMapping:
    def test_preserves_name_case(self) -> None:
        response = httpx.Response(200, headers={"Cache-Control": "max-age=5"})
        assert header_mapping(response)["Cache-Control"] == "max-age=5"

    def test_repeated_headers_become_lists(self) -> None:
        response = httpx.Response(
            200,
            headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2"), ("Set-Cookie", "c=3")],
        )
        assert header_mapping(response)["Set-Cookie"] == ["a=1", "b=2", "c=3"]

    def test_header_pairs_repeats_lists(self) -> None:
        pairs = header_pairs({"X-One": "1", "X-Many": ["a", "b"]})
        assert pairs == [("X-One", "1"), ("X-Many", "a"), ("X-Many", "b")]


# ------------------------------------------------------------------ #
# Blobs
# ------------------------------------------------------------------ #


class TestBlobs:
    def test_body_round_trip(self) -> None:
        body = b"\x00\x01binary\xff" * 100
        assert unpack_body(pack_body(body)) == body

    def test_body_is_compressed(self) -> None:
        body = b"a" * 10_000
        assert len(pack_body(body)) < len(body)

    def test_headers_round_trip(self) -> None:
        headers = {"Content-Type": "text/html; charset=utf-8", "Vary": ["Accept", "Cookie"]}
        assert unpack_headers(pack_headers(headers)) == headers

    def test_corrupt_body_raises(self) -> None:
        with pytest.raises(CacheStoreError):
            unpack_body(b"not bz2")

    def test_corrupt_headers_raise(self) -> None:
        with pytest.raises(CacheStoreError):
            unpack_headers(b"not bz2")

    def test_headers_must_be_object(self) -> None:
        with pytest.raises(CacheStoreError):
            unpack_headers(pack_body(b"[1, 2]"))


# ------------------------------------------------------------------ #
# Synthetic responses
# ------------------------------------------------------------------ #


class TestBuildResponse:
    def test_status_body_and_headers(self) -> None:
        response = build_response(
            "GET",
            "https://example.com/page",
            "héllo".encode("utf-8"),
            {"Content-Type": "text/plain; charset=utf-8", "X-Tag": ["a", "b"]},
        )
        assert response.status_code == 200
        assert response.text == "héllo"
        assert response.headers.get_list("X-Tag") == ["a", "b"]
        assert response.request.url == "https://example.com/page"

    def test_framing_headers_dropped(self) -> None:
        """Stored bodies are already decoded, so gzip framing must not be replayed."""
        response = build_response(
            "GET",
            "https://example.com/",
            b"plain text",
            {"Content-Encoding": "gzip", "Content-Length": "999"},
        )
        assert response.content == b"plain text"
        assert "content-encoding" not in response.headers
        assert response.headers["content-length"] == str(len(b"plain text"))

    def test_non_ascii_header_values(self) -> None:
        response = build_response(
            "GET", "https://example.com/", b"body", {"X-Name": "café"}
        )
        assert (b"X-Name", "café".encode("utf-8")) in response.headers.raw
        assert header_mapping(response)["X-Name"] == "café"
