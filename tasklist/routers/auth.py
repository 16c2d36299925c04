import logging

from fastapi import APIRouter, Depends, Response, status

from tasklist.core.config import SettingsDep
from tasklist.core.deps import CurrentUserDep, DbDep, TokenServiceDep
from tasklist.core.errors import InvalidCredentials, payload_error_code
from tasklist.core.rate_limit import rate_limit
from tasklist.models import (
    AccessTokenResponse,
    AuthTokens,
    AuthUser,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    User,
)
from tasklist.services.token_service import TokenService
from tasklist.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_tokens(user: User, tokens: TokenService) -> AuthTokens:
    pair = tokens.issue_token_pair(user)
    return AuthTokens(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        user=AuthUser(id=user.id, username=user.username),
    )


@router.post(
    "/register", response_model=AuthTokens, status_code=status.HTTP_201_CREATED
)
@payload_error_code("INVALID_REGISTER_PAYLOAD")
async def register(
    body: RegisterRequest, db: DbDep, tokens: TokenServiceDep, settings: SettingsDep
):
    """Register a new user and log them in"""
    user = await UserService.create_user(body.username, body.password, db, settings)
    return _auth_tokens(user, tokens)


@router.post(
    "/login",
    response_model=AuthTokens,
    dependencies=[Depends(rate_limit("login"))],
)
@payload_error_code("INVALID_LOGIN_PAYLOAD")
async def login(body: LoginRequest, db: DbDep, tokens: TokenServiceDep):
    user = await UserService.authenticate(body.username, body.password, db)
    if not user:
        raise InvalidCredentials("unknown user or wrong password")
    return _auth_tokens(user, tokens)


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    dependencies=[Depends(rate_limit("refresh"))],
)
@payload_error_code("MISSING_REFRESH_TOKEN")
async def refresh(body: RefreshRequest, tokens: TokenServiceDep):
    """Exchange a refresh token for a new access token"""
    return AccessTokenResponse(access_token=tokens.refresh(body.refresh_token))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@payload_error_code("MISSING_REFRESH_TOKEN")
async def logout(body: RefreshRequest, tokens: TokenServiceDep):
    """Revoke a refresh token. Always succeeds."""
    result = tokens.logout(body.refresh_token)
    logger.debug("Logout result: %s", result.value)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_all(current_user: CurrentUserDep, tokens: TokenServiceDep):
    """Revoke every refresh token of the authenticated user"""
    tokens.revoke_all(current_user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
