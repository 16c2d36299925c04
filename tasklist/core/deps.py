from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from tasklist.database import get_db
from tasklist.services.token_service import TokenClaims, TokenService


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_current_user(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """Authenticate the bearer access token of a protected request."""
    return tokens.authenticate(request.headers.get("Authorization"))


DbDep = Annotated[AsyncSession, Depends(get_db)]
TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
CurrentUserDep = Annotated[TokenClaims, Depends(get_current_user)]
