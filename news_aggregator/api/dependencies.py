"""
FastAPI dependencies: settings, database sessions and bearer authentication.
"""
from typing import Annotated, AsyncIterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from news_aggregator.config import Settings
from news_aggregator.core.exceptions import AuthenticationError
from news_aggregator.models.database import Database, DBUser
from news_aggregator.services.auth import AuthService

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db_session(
    database: Annotated[Database, Depends(get_database)],
) -> AsyncIterator[AsyncSession]:
    """Dependency to get a database session."""
    async with database.async_session() as session:
        yield session


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
CredentialsDep = Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]


def get_auth_service(session: SessionDep, settings: SettingsDep) -> AuthService:
    return AuthService(session, token_ttl_minutes=settings.access_token_ttl_minutes)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


def get_bearer_token(credentials: CredentialsDep) -> str:
    if credentials is None:
        raise AuthenticationError("Unauthenticated")
    return credentials.credentials


async def get_optional_user(
    credentials: CredentialsDep,
    auth: AuthServiceDep,
) -> Optional[DBUser]:
    """The authenticated user, or None for anonymous requests.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None
    return await auth.authenticate(credentials.credentials)


async def get_current_user(
    token: Annotated[str, Depends(get_bearer_token)],
    auth: AuthServiceDep,
) -> DBUser:
    return await auth.authenticate(token)


TokenDep = Annotated[str, Depends(get_bearer_token)]
OptionalUserDep = Annotated[Optional[DBUser], Depends(get_optional_user)]
CurrentUserDep = Annotated[DBUser, Depends(get_current_user)]
