"""Tests for credential resolution."""

from unittest.mock import patch

import pytest
from jose import jwt

from weather_aggregator.config import MemoryConfigBackend, SourceConfigStore
from weather_aggregator.providers.credentials import CredentialConfig, CredentialResolver

SIGNING_KEY = "test-signing-key-at-least-32-characters"


@pytest.fixture
def store() -> SourceConfigStore:
    return SourceConfigStore("mf", MemoryConfigBackend())


class TestSourceConfigStore:
    """Tests for the scoped key/value store."""

    def test_keys_are_scoped_by_source(self):
        backend = MemoryConfigBackend()
        SourceConfigStore("mf", backend).set("apikey", "a")
        SourceConfigStore("bmkg", backend).set("apikey", "b")
        assert backend.get("mf.apikey") == "a"
        assert SourceConfigStore("bmkg", backend).get("apikey") == "b"

    def test_missing_key(self, store):
        assert store.get("apikey") is None


class TestCredentialResolver:
    """Tests for the key / token priority order."""

    def test_user_key_wins(self, store):
        resolver = CredentialResolver(
            CredentialConfig(default_key="default", signing_key=SIGNING_KEY), store
        )
        resolver.user_key = "mine"
        assert resolver.resolve_token() == "mine"
        assert not resolver.is_restricted

    def test_user_key_equal_to_default_is_ignored(self, store):
        resolver = CredentialResolver(
            CredentialConfig(default_key="default", signing_key=SIGNING_KEY), store
        )
        resolver.user_key = "default"
        token = resolver.resolve_token()
        assert token != "default"
        assert jwt.get_unverified_header(token)["typ"] == "JWT"

    def test_default_key_without_signing_key(self, store):
        resolver = CredentialResolver(CredentialConfig(default_key="default"), store)
        assert resolver.resolve_token() == "default"
        assert resolver.is_restricted
        assert resolver.is_configured

    def test_minted_token_claims(self, store):
        resolver = CredentialResolver(
            CredentialConfig(
                default_key="default",
                signing_key=SIGNING_KEY,
                claims={"class": "mobile"},
            ),
            store,
        )
        token = resolver.resolve_token()
        claims = jwt.decode(token, SIGNING_KEY, algorithms=["HS256"])
        header = jwt.get_unverified_header(token)

        assert claims["class"] == "mobile"
        assert isinstance(claims["iat"], int)
        assert claims["jti"]
        assert header["alg"] == "HS256"
        assert header["typ"] == "JWT"

    def test_each_token_has_a_fresh_id(self, store):
        resolver = CredentialResolver(
            CredentialConfig(default_key="", signing_key=SIGNING_KEY), store
        )
        first = jwt.get_unverified_claims(resolver.resolve_token())
        second = jwt.get_unverified_claims(resolver.resolve_token())
        assert first["jti"] != second["jti"]

    def test_signing_failure_falls_back_to_default(self, store):
        resolver = CredentialResolver(
            CredentialConfig(default_key="default", signing_key=SIGNING_KEY), store
        )
        with patch(
            "weather_aggregator.providers.credentials.jwt.encode",
            side_effect=RuntimeError("no crypto"),
        ):
            assert resolver.resolve_token() == "default"

    def test_not_configured_without_any_key(self, store):
        resolver = CredentialResolver(CredentialConfig(), store)
        assert resolver.resolve_token() == ""
        assert not resolver.is_configured

    def test_mint_without_signing_key_raises(self, store):
        resolver = CredentialResolver(CredentialConfig(default_key="default"), store)
        with pytest.raises(ValueError):
            resolver.mint_token()
