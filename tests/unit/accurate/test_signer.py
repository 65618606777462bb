"""Tests for HMAC request signing."""

import hashlib
import hmac

from accurate_exchange.accurate.signer import canonical_string, sign, signed_headers


class TestSign:
    """Signature determinism and sensitivity."""

    def test_matches_hmac_sha256_of_canonical_string(self):
        expected = hmac.new(
            b"secret",
            b"GET\n/accurate/api/item/list.do?sp.page=1\n1700000000",
            hashlib.sha256,
        ).hexdigest()
        assert sign("get", "/accurate/api/item/list.do?sp.page=1", 1700000000, "secret") == expected

    def test_deterministic(self):
        first = sign("POST", "/api/item-adjustment/save.do", 1700000000, "secret")
        second = sign("POST", "/api/item-adjustment/save.do", 1700000000, "secret")
        assert first == second
        assert len(first) == 64

    def test_sensitive_to_every_input(self):
        base = sign("GET", "/a?x=1", 100, "secret")
        assert sign("POST", "/a?x=1", 100, "secret") != base
        assert sign("GET", "/a?x=2", 100, "secret") != base
        assert sign("GET", "/a?x=1", 101, "secret") != base
        assert sign("GET", "/a?x=1", 100, "other") != base

    def test_method_case_does_not_matter(self):
        assert sign("get", "/a", 1, "s") == sign("GET", "/a", 1, "s")

    def test_canonical_string_layout(self):
        assert canonical_string("put", "/p?q=1", 42) == "PUT\n/p?q=1\n42"


class TestSignedHeaders:
    """Headers attached to signed calls."""

    def test_contains_token_timestamp_signature_and_session(self):
        headers = signed_headers(
            "GET", "/api/x.do", api_token="tok", signature_secret="s", session="sess", timestamp=123
        )
        assert headers["Authorization"] == "Bearer tok"
        assert headers["X-Api-Timestamp"] == "123"
        assert headers["X-Api-Signature"] == sign("GET", "/api/x.do", 123, "s")
        assert headers["X-Session-ID"] == "sess"

    def test_session_header_omitted_when_unknown(self):
        headers = signed_headers("GET", "/api/x.do", api_token="tok", signature_secret="s", timestamp=1)
        assert "X-Session-ID" not in headers

    def test_timestamp_defaults_to_now(self, monkeypatch):
        monkeypatch.setattr("accurate_exchange.accurate.signer.time.time", lambda: 1700000123.9)
        headers = signed_headers("GET", "/p", api_token="t", signature_secret="s")
        assert headers["X-Api-Timestamp"] == "1700000123"
