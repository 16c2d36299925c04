import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

import jwt

from tasklist.core.config import Settings
from tasklist.core.errors import (
    InternalFailure,
    InvalidAccessToken,
    InvalidRefreshToken,
    RefreshTokenRevoked,
)
from tasklist.services.token_store import RevocationRegistry

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Identity(Protocol):
    id: str
    username: str


@dataclass(frozen=True)
class TokenClaims:
    """Identity decoded from a verified token."""

    user_id: str
    username: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class LogoutResult(enum.Enum):
    REVOKED = "revoked"
    ALREADY_INVALID = "already_invalid"


class TokenService:
    """
    Issues and verifies access/refresh token pairs.

    Access tokens are stateless: verification only checks the access secret
    and expiry. Refresh tokens are signed with a separate secret and must
    also be present in the revocation registry to be honored.
    """

    def __init__(
        self,
        settings: Settings,
        registry: RevocationRegistry,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self._clock = clock
        self._algorithm = settings.jwt_algorithm
        self._secrets = {
            ACCESS: settings.jwt_access_secret,
            REFRESH: settings.jwt_refresh_secret,
        }
        self._ttls = {
            ACCESS: timedelta(seconds=settings.access_token_ttl_seconds),
            REFRESH: timedelta(seconds=settings.refresh_token_ttl_seconds),
        }

    def _sign(self, kind: str, user_id: str, username: str) -> str:
        now = self._clock()
        payload = {
            "userId": user_id,
            "username": username,
            "type": kind,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttls[kind]).timestamp()),
        }
        try:
            return jwt.encode(payload, self._secrets[kind], algorithm=self._algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise InternalFailure(f"signing {kind} token failed: {e}") from e

    def _decode(self, kind: str, token: str) -> TokenClaims:
        """
        Verify signature and expiry of a token of the given kind.

        Expiry is checked against the injected clock rather than PyJWT's,
        so raises jwt.ExpiredSignatureError itself.
        """
        payload: dict[str, Any] = jwt.decode(
            token,
            self._secrets[kind],
            algorithms=[self._algorithm],
            options={
                "verify_exp": False,
                "verify_iat": False,
                "require": ["exp", "iat", "userId", "type"],
            },
        )
        if payload["type"] != kind:
            raise jwt.InvalidTokenError(f"expected {kind} token, got {payload['type']}")

        try:
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise jwt.InvalidTokenError(f"bad timestamp claim: {e}") from e
        if expires_at <= self._clock():
            raise jwt.ExpiredSignatureError("Signature has expired")

        return TokenClaims(
            user_id=str(payload["userId"]),
            username=str(payload.get("username", "")),
            issued_at=issued_at,
            expires_at=expires_at,
        )

    # Issuing

    def issue_token_pair(self, user: Identity) -> TokenPair:
        """Mint an access/refresh pair and register the refresh token."""
        access_token = self._sign(ACCESS, user.id, user.username)
        refresh_token = self._sign(REFRESH, user.id, user.username)
        self.registry.register(user.id, refresh_token)
        logger.info("Issued token pair for user %s", user.id)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def issue_access_token(self, user_id: str, username: str) -> str:
        return self._sign(ACCESS, user_id, username)

    # Verifying

    def verify_access_token(self, token: str) -> TokenClaims:
        try:
            return self._decode(ACCESS, token)
        except jwt.ExpiredSignatureError as e:
            raise InvalidAccessToken("access token expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidAccessToken(f"access token rejected: {e}") from e

    def authenticate(self, authorization: str | None) -> TokenClaims:
        """
        Authenticate an `Authorization: Bearer <token>` header value.

        Every failure raises InvalidAccessToken; the reason is for logs only.
        """
        if not authorization:
            raise InvalidAccessToken("missing Authorization header")

        scheme, _, token = authorization.partition(" ")
        token = token.strip()
        if scheme != "Bearer" or not token:
            raise InvalidAccessToken("malformed Authorization header")

        return self.verify_access_token(token)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        try:
            claims = self._decode(REFRESH, token)
        except jwt.ExpiredSignatureError as e:
            raise InvalidRefreshToken("refresh token expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidRefreshToken(f"refresh token rejected: {e}") from e

        if not self.registry.is_registered(claims.user_id, token):
            raise RefreshTokenRevoked(f"refresh token not registered for {claims.user_id}")
        return claims

    # Refresh / logout

    def refresh(self, refresh_token: str) -> str:
        """
        Exchange a registered refresh token for a new access token.

        The refresh token is not consumed and stays usable until it expires
        or is revoked.
        """
        claims = self.verify_refresh_token(refresh_token)
        return self.issue_access_token(claims.user_id, claims.username)

    def logout(self, refresh_token: str) -> LogoutResult:
        try:
            claims = self._decode(REFRESH, refresh_token)
        except jwt.InvalidTokenError:
            return LogoutResult.ALREADY_INVALID

        if self.registry.revoke(claims.user_id, refresh_token):
            logger.info("Revoked refresh token for user %s", claims.user_id)
            return LogoutResult.REVOKED
        return LogoutResult.ALREADY_INVALID

    def revoke_all(self, user_id: str) -> int:
        revoked = self.registry.revoke_all(user_id)
        logger.info("Revoked %d refresh tokens for user %s", revoked, user_id)
        return revoked
