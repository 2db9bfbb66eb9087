"""Unit tests for API key and session credentials, and caller identification."""

from datetime import timedelta

import jwt
import pytest

from ogimage.core.auth import ANONYMOUS, API_KEY, SESSION, Caller, CallerIdentifier
from ogimage.core.config import settings
from ogimage.core.security import (
    CredentialError,
    admin_secret_matches,
    api_key_matches,
    extract_bearer_token,
    generate_api_key,
    hash_api_key,
    issue_session_token,
    parse_api_key,
    verify_session_token,
)
from ogimage.models.exceptions import UnauthorizedError
from ogimage.models.schemas import ApiKeyRecord
from ogimage.services.accounts import ApiKeyStore
from ogimage.services.kv import MemoryKeyValueStore


class TestApiKeys:
    """Test cases for API key parsing and hashing."""

    def test_generated_key_parses(self):
        key = generate_api_key()
        parsed = parse_api_key(key.raw)

        assert key.raw.startswith("eog_")
        assert parsed.kid == key.kid
        assert parsed.secret == key.secret

    @pytest.mark.parametrize("raw", [
        "",
        "eog_short_abcdefghijklmnopqrstuvwxyz",
        "sk_abcdef12_abcdefghijklmnopqrstuvwxyz",
        "eog_ABCDEF12_abcdefghijklmnopqrstuvwxyz",
        "eog_abcdef12_tooshort",
        "eog_abcdef12_has space in the secret part",
    ])
    def test_malformed_keys_rejected(self, raw):
        with pytest.raises(CredentialError):
            parse_api_key(raw)

    def test_hash_is_keyed_by_secret(self, monkeypatch):
        raw = generate_api_key().raw
        first = hash_api_key(raw)

        monkeypatch.setattr(settings, "jwt_secret", "another-secret")

        assert hash_api_key(raw) != first

    def test_matches(self):
        raw = generate_api_key().raw
        stored = hash_api_key(raw)

        assert api_key_matches(raw, stored)
        assert not api_key_matches(generate_api_key().raw, stored)

    def test_hash_requires_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "jwt_secret", "")

        with pytest.raises(CredentialError):
            hash_api_key("eog_abcdef12_abcdefghijklmnopqrstuvwxyz")

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer  abc ", "abc"),
        ("Basic abc", None),
        ("Bearer ", None),
        (None, None),
    ])
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestSessionTokens:
    """Test cases for dashboard session tokens."""

    def test_round_trip(self):
        claims = verify_session_token(issue_session_token("acct-42"))

        assert claims.account_id == "acct-42"

    def test_expired(self):
        token = issue_session_token("acct-42", ttl=timedelta(seconds=-10))

        with pytest.raises(CredentialError) as exc_info:
            verify_session_token(token)

        assert exc_info.value.reason == "session expired"

    def test_wrong_signature(self):
        token = jwt.encode({"account_id": "acct-42", "type": "session", "exp": 9999999999},
                           "someone-elses-secret", algorithm="HS256")

        with pytest.raises(CredentialError):
            verify_session_token(token)

    def test_wrong_type(self):
        token = jwt.encode({"account_id": "acct-42", "type": "refresh", "exp": 9999999999},
                           settings.jwt_secret, algorithm="HS256")

        with pytest.raises(CredentialError) as exc_info:
            verify_session_token(token)

        assert exc_info.value.reason == "not a session token"

    def test_garbage(self):
        with pytest.raises(CredentialError):
            verify_session_token("not-a-jwt")


class TestAdminSecret:
    def test_matches(self):
        assert admin_secret_matches("test-admin-secret")
        assert not admin_secret_matches("wrong")
        assert not admin_secret_matches(None)

    def test_unset_secret_never_matches(self, monkeypatch):
        monkeypatch.setattr(settings, "admin_secret", "")

        assert not admin_secret_matches("")
        assert not admin_secret_matches("anything")


class TestCallerIdentifier:
    """Test cases for CallerIdentifier.identify."""

    @pytest.fixture
    def store(self):
        return ApiKeyStore(MemoryKeyValueStore())

    @pytest.fixture
    def identifier(self, store):
        return CallerIdentifier(store)

    async def test_valid_api_key(self, store, identifier):
        raw = await store.create("acct-1")

        caller = await identifier.identify({"authorization": f"Bearer {raw}"}, {}, "1.2.3.4")

        assert caller.kind == API_KEY
        assert caller.account_id == "acct-1"
        assert caller.credential_id == parse_api_key(raw).kid

    async def test_revoked_key_is_anonymous_when_auth_optional(self, store, identifier):
        raw = await store.create("acct-1")
        kid = parse_api_key(raw).kid
        record = await store.get(kid)
        record.revoked = True
        await store.put(kid, record)

        caller = await identifier.identify({"authorization": f"Bearer {raw}"}, {}, "1.2.3.4")

        assert caller.kind == ANONYMOUS
        assert caller.credential_id is None

    async def test_unknown_key_rejected_when_auth_required(self, identifier, require_auth):
        with pytest.raises(UnauthorizedError):
            await identifier.identify({"authorization": f"Bearer {generate_api_key().raw}"}, {}, "1.2.3.4")

    async def test_missing_credential_rejected_when_auth_required(self, identifier, require_auth):
        with pytest.raises(UnauthorizedError):
            await identifier.identify({}, {}, "1.2.3.4")

    async def test_hash_mismatch(self, store, identifier, require_auth):
        raw = await store.create("acct-1")
        kid = parse_api_key(raw).kid
        await store.put(kid, ApiKeyRecord(account="acct-1", hash="0" * 64))

        with pytest.raises(UnauthorizedError):
            await identifier.identify({"authorization": f"Bearer {raw}"}, {}, "1.2.3.4")

    async def test_session_cookie_only_for_template_preview(self, identifier):
        cookies = {settings.session_cookie_name: issue_session_token("acct-7")}

        preview = await identifier.identify({}, cookies, "1.2.3.4", template_preview=True)
        plain = await identifier.identify({}, cookies, "1.2.3.4", template_preview=False)

        assert preview.kind == SESSION
        assert preview.credential_id == "session:acct-7"
        assert plain.kind == ANONYMOUS

    async def test_invalid_session_falls_through_to_api_key(self, store, identifier):
        raw = await store.create("acct-1")
        cookies = {settings.session_cookie_name: "garbage"}

        caller = await identifier.identify({"authorization": f"Bearer {raw}"}, cookies, "1.2.3.4",
                                           template_preview=True)

        assert caller.kind == API_KEY

    def test_caller_properties(self):
        assert Caller(kind=ANONYMOUS).is_anonymous
        assert Caller(kind=SESSION, account_id="a").via_session
        assert Caller(kind=API_KEY, account_id="a", kid="k").credential_id == "k"
