"""Unit tests for ETag derivation and cache-version handling."""

import re
from datetime import datetime, timezone

import pytest

from ogimage.services.cache import (
    CACHE_CONTROL,
    EdgeCacheState,
    cache_headers,
    decide,
    extract_cache_version,
    fingerprint,
    should_invalidate,
)
from ogimage.services.validation import normalize_params

ETAG_RE = re.compile(r'^"[0-9a-f]{16}"$')
STATUS_HEADER = "CF-Cache-Status"


class TestFingerprint:
    """Test cases for fingerprint."""

    def test_format(self):
        assert ETAG_RE.match(fingerprint({"title": "hello"}))

    def test_order_independent(self):
        first = fingerprint({"title": "hello", "theme": "dark", "template": "blog"})
        second = fingerprint({"template": "blog", "theme": "dark", "title": "hello"})

        assert first == second

    def test_version_changes_etag(self):
        params = {"title": "hello"}

        assert fingerprint(params, "1") != fingerprint(params, "2")
        assert fingerprint(params, None) != fingerprint(params, "1")

    def test_params_change_etag(self):
        assert fingerprint({"title": "hello"}) != fingerprint({"title": "world"})

    def test_case_and_whitespace_collapse_after_normalization(self):
        """Inputs that normalize identically share an ETag."""
        first = fingerprint(normalize_params({"title": "Hello ", "theme": "DARK"}))
        second = fingerprint(normalize_params({"theme": "dark", "title": " hello"}))

        assert first == second

    def test_defaults_are_explicit(self):
        """Omitting a defaulted param is the same request as naming its default."""
        assert fingerprint(normalize_params({})) == fingerprint(normalize_params({"theme": "light"}))

    def test_non_ascii(self):
        assert ETAG_RE.match(fingerprint({"title": "héllo wörld 🚀"}))


class TestCacheVersion:
    """Test cases for version extraction and invalidation."""

    def test_v_param_wins_over_default(self):
        assert extract_cache_version({"v": "7"}, default="1") == "7"

    def test_cache_version_param(self):
        assert extract_cache_version({"cache_version": "2024-10"}) == "2024-10"

    def test_default_used_when_absent(self):
        assert extract_cache_version({}, default="3") == "3"
        assert extract_cache_version({}) is None

    @pytest.mark.parametrize("value", ["has space", "x" * 33, "bad/slash", ""])
    def test_invalid_versions_ignored(self, value):
        assert extract_cache_version({"v": value}, default="1") == "1"

    @pytest.mark.parametrize("incoming,existing,expected", [
        ("2", "1", True),
        ("1", "1", False),
        (None, "1", False),
        ("2", None, False),
    ])
    def test_should_invalidate(self, incoming, existing, expected):
        assert should_invalidate(incoming, existing) is expected


class TestEdgeCacheState:
    """Test cases for reading edge cache state from request headers."""

    def test_known_status(self):
        state = EdgeCacheState.from_headers({STATUS_HEADER: "miss"}, STATUS_HEADER)

        assert state.status == "MISS"
        assert state.existing_version is None

    def test_unknown_status(self):
        assert EdgeCacheState.from_headers({STATUS_HEADER: "DYNAMIC"}, STATUS_HEADER).status == "UNKNOWN"
        assert EdgeCacheState.from_headers({}, STATUS_HEADER).status == "UNKNOWN"

    def test_hit_without_reported_version(self):
        state = EdgeCacheState.from_headers({STATUS_HEADER: "HIT"}, STATUS_HEADER)

        assert state.existing_version == "existing"

    def test_reported_version(self):
        state = EdgeCacheState.from_headers({STATUS_HEADER: "HIT", "X-Cached-Version": "4"}, STATUS_HEADER)

        assert state.existing_version == "4"


class TestDecide:
    """Test cases for the combined cache decision and response headers."""

    def test_version_bump_on_hit_invalidates(self):
        decision = decide({"title": "x"}, {"v": "2"}, {STATUS_HEADER: "HIT", "X-Cached-Version": "1"},
                          None, STATUS_HEADER)

        assert decision.invalidated is True
        assert decision.cache_version == "2"
        assert decision.metrics()["invalidated"] is True

    def test_no_version_no_invalidation(self):
        decision = decide({"title": "x"}, {}, {STATUS_HEADER: "HIT"}, None, STATUS_HEADER)

        assert decision.invalidated is False
        assert decision.cache_version is None

    def test_headers(self):
        decision = decide({"title": "x"}, {"v": "2"}, {STATUS_HEADER: "HIT", "X-Cached-Version": "1"},
                          None, STATUS_HEADER)
        now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

        headers = cache_headers(decision, now)

        assert headers["Cache-Control"] == CACHE_CONTROL == "public, immutable, max-age=31536000"
        assert headers["ETag"] == decision.etag
        assert headers["Last-Modified"] == "Wed, 01 May 2024 12:00:00 GMT"
        assert headers["Vary"] == "Accept-Encoding"
        assert headers["X-Cache-Status"] == "HIT"
        assert headers["X-Cache-TTL"] == "31536000"
        assert headers["X-Cache-Version"] == "2"
        assert headers["X-Cache-Invalidated"] == "true"

    def test_optional_headers_omitted(self):
        decision = decide({"title": "x"}, {}, {}, None, STATUS_HEADER)

        headers = cache_headers(decision)

        assert "X-Cache-Version" not in headers
        assert "X-Cache-Invalidated" not in headers
