"""Tests for token issuing, verification, refresh and logout."""

from dataclasses import dataclass

import jwt
import pytest

from conftest import ACCESS_SECRET, REFRESH_SECRET, FakeClock, make_settings
from tasklist.core.errors import (
    InvalidAccessToken,
    InvalidRefreshToken,
    RefreshTokenRevoked,
)
from tasklist.services.token_service import LogoutResult, TokenService
from tasklist.services.token_store import RevocationRegistry


@dataclass
class StubUser:
    id: str
    username: str


@pytest.fixture
def alice():
    return StubUser(id="user-alice", username="alice")


class TestIssueTokenPair:
    def test_registers_refresh_token_under_user_id(self, token_service, registry, alice):
        pair = token_service.issue_token_pair(alice)

        assert registry.is_registered(alice.id, pair.refresh_token)
        assert not registry.is_registered(alice.id, pair.access_token)

    def test_access_and_refresh_tokens_differ(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)

        assert pair.access_token != pair.refresh_token

    def test_tokens_use_separate_secrets(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)

        access = jwt.decode(pair.access_token, ACCESS_SECRET, algorithms=["HS256"])
        refresh = jwt.decode(pair.refresh_token, REFRESH_SECRET, algorithms=["HS256"])

        assert access["userId"] == refresh["userId"] == alice.id
        assert access["username"] == refresh["username"] == "alice"
        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(pair.access_token, REFRESH_SECRET, algorithms=["HS256"])

    def test_expiry_windows(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)

        access = token_service.verify_access_token(pair.access_token)
        refresh = token_service.verify_refresh_token(pair.refresh_token)

        assert (access.expires_at - access.issued_at).total_seconds() == 15 * 60
        assert (refresh.expires_at - refresh.issued_at).total_seconds() == 7 * 24 * 3600

    def test_repeated_issuance_gives_distinct_tokens(self, token_service, registry, alice):
        first = token_service.issue_token_pair(alice)
        second = token_service.issue_token_pair(alice)

        assert first.access_token != second.access_token
        assert first.refresh_token != second.refresh_token
        assert registry.count(alice.id) == 2


class TestAuthenticate:
    def test_valid_bearer_header(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)

        claims = token_service.authenticate(f"Bearer {pair.access_token}")

        assert claims.user_id == alice.id
        assert claims.username == "alice"

    @pytest.mark.parametrize(
        "header",
        [None, "", "Bearer", "Bearer ", "Token abc", "bearer abc", "Bearer not-a-jwt"],
    )
    def test_malformed_headers_are_rejected(self, token_service, header):
        with pytest.raises(InvalidAccessToken):
            token_service.authenticate(header)

    def test_refresh_token_is_not_an_access_token(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)

        with pytest.raises(InvalidAccessToken):
            token_service.authenticate(f"Bearer {pair.refresh_token}")

    def test_token_signed_with_refresh_secret_is_rejected(self, token_service, alice):
        forged = jwt.encode(
            {"userId": alice.id, "username": "alice", "type": "access", "iat": 0, "exp": 2**31},
            REFRESH_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(InvalidAccessToken):
            token_service.authenticate(f"Bearer {forged}")

    @pytest.mark.parametrize(
        "claims",
        [{"exp": "soon"}, {"iat": "earlier"}, {"exp": 10**20}],
    )
    def test_malformed_timestamp_claims_are_rejected(self, token_service, alice, claims):
        payload = {"userId": alice.id, "username": "alice", "type": "access", "iat": 0, "exp": 2**31}
        forged = jwt.encode({**payload, **claims}, ACCESS_SECRET, algorithm="HS256")

        with pytest.raises(InvalidAccessToken):
            token_service.authenticate(f"Bearer {forged}")

    def test_type_claim_separates_kinds_even_with_shared_secret(self, tmp_path, alice):
        settings = make_settings(
            tmp_path, jwt_access_secret=ACCESS_SECRET, jwt_refresh_secret=ACCESS_SECRET
        )
        service = TokenService(settings, RevocationRegistry())
        pair = service.issue_token_pair(alice)

        with pytest.raises(InvalidAccessToken):
            service.authenticate(f"Bearer {pair.refresh_token}")
        with pytest.raises(InvalidRefreshToken):
            service.refresh(pair.access_token)

    def test_expired_access_token_is_rejected(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)
        clock.advance(minutes=15)

        with pytest.raises(InvalidAccessToken):
            token_service.authenticate(f"Bearer {pair.access_token}")

    def test_access_token_valid_just_before_expiry(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)
        clock.advance(minutes=14, seconds=59)

        assert token_service.authenticate(f"Bearer {pair.access_token}").user_id == alice.id

    def test_does_not_consult_registry(self, token_service, registry, alice):
        pair = token_service.issue_token_pair(alice)
        registry.clear()

        assert token_service.authenticate(f"Bearer {pair.access_token}").user_id == alice.id


class TestRefresh:
    def test_refresh_returns_new_access_token(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)
        clock.advance(seconds=1)

        access_token = token_service.refresh(pair.refresh_token)

        assert access_token != pair.access_token
        claims = token_service.verify_access_token(access_token)
        assert (claims.user_id, claims.username) == (alice.id, "alice")

    def test_refresh_does_not_touch_registry(self, token_service, registry, alice):
        pair = token_service.issue_token_pair(alice)

        token_service.refresh(pair.refresh_token)
        token_service.refresh(pair.refresh_token)

        assert registry.count(alice.id) == 1
        assert registry.is_registered(alice.id, pair.refresh_token)

    def test_refresh_after_access_expiry(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)
        clock.advance(hours=1)

        access_token = token_service.refresh(pair.refresh_token)

        assert token_service.verify_access_token(access_token).user_id == alice.id

    def test_unregistered_token_is_revoked(self, token_service, registry, alice):
        pair = token_service.issue_token_pair(alice)
        registry.revoke(alice.id, pair.refresh_token)

        with pytest.raises(RefreshTokenRevoked) as exc_info:
            token_service.refresh(pair.refresh_token)

        # callers see the same category as any other refresh failure
        assert exc_info.value.code == InvalidRefreshToken.code
        assert exc_info.value.message == InvalidRefreshToken.message

    def test_expired_refresh_token_fails(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)
        clock.advance(days=7)

        with pytest.raises(InvalidRefreshToken) as exc_info:
            token_service.refresh(pair.refresh_token)
        assert not isinstance(exc_info.value, RefreshTokenRevoked)

    def test_garbage_and_access_tokens_fail(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)

        for bad in ("garbage", pair.access_token, pair.refresh_token + "x"):
            with pytest.raises(InvalidRefreshToken):
                token_service.refresh(bad)

    def test_token_from_another_process_is_rejected(self, settings, alice):
        """A fresh registry (process restart) honors nothing issued before."""
        before = TokenService(settings, RevocationRegistry())
        pair = before.issue_token_pair(alice)
        after = TokenService(settings, RevocationRegistry())

        with pytest.raises(RefreshTokenRevoked):
            after.refresh(pair.refresh_token)


class TestLogout:
    def test_logout_revokes(self, token_service, registry, alice):
        pair = token_service.issue_token_pair(alice)

        assert token_service.logout(pair.refresh_token) is LogoutResult.REVOKED
        assert not registry.is_registered(alice.id, pair.refresh_token)
        with pytest.raises(InvalidRefreshToken):
            token_service.refresh(pair.refresh_token)

    def test_second_logout_is_already_invalid(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)
        token_service.logout(pair.refresh_token)

        assert token_service.logout(pair.refresh_token) is LogoutResult.ALREADY_INVALID

    def test_logout_with_garbage_is_already_invalid(self, token_service):
        assert token_service.logout("garbage") is LogoutResult.ALREADY_INVALID

    def test_logout_with_expired_token_is_already_invalid(self, token_service, alice, clock):
        pair = token_service.issue_token_pair(alice)
        clock.advance(days=8)

        assert token_service.logout(pair.refresh_token) is LogoutResult.ALREADY_INVALID

    def test_logout_with_malformed_expiry_is_already_invalid(self, token_service, alice):
        forged = jwt.encode(
            {"userId": alice.id, "username": "alice", "type": "refresh", "iat": 0, "exp": "soon"},
            REFRESH_SECRET,
            algorithm="HS256",
        )

        assert token_service.logout(forged) is LogoutResult.ALREADY_INVALID
        with pytest.raises(InvalidRefreshToken):
            token_service.refresh(forged)

    def test_logout_leaves_other_sessions(self, token_service, alice):
        first = token_service.issue_token_pair(alice)
        second = token_service.issue_token_pair(alice)

        token_service.logout(first.refresh_token)

        assert token_service.refresh(second.refresh_token)

    def test_access_token_survives_logout(self, token_service, alice):
        pair = token_service.issue_token_pair(alice)
        token_service.logout(pair.refresh_token)

        assert token_service.verify_access_token(pair.access_token).user_id == alice.id


class TestRevokeAll:
    def test_revokes_every_session_of_the_user(self, token_service, alice):
        bob = StubUser(id="user-bob", username="bob")
        pairs = [token_service.issue_token_pair(alice) for _ in range(3)]
        bob_pair = token_service.issue_token_pair(bob)

        assert token_service.revoke_all(alice.id) == 3

        for pair in pairs:
            with pytest.raises(InvalidRefreshToken):
                token_service.refresh(pair.refresh_token)
        assert token_service.refresh(bob_pair.refresh_token)


def test_fake_clock_advances():
    clock = FakeClock()
    start = clock()
    clock.advance(seconds=5)

    assert (clock() - start).total_seconds() == 5
