from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.config import settings
from unisphere.database import get_async_session
from unisphere.models.user import User
from unisphere.core.errors import InvalidToken, Unauthorized
from unisphere.core.security import JWTService, extract_bearer_token
from unisphere.realtime.hub import Hub
from unisphere.services.auth import AuthService
from unisphere.services.chat import ChatService
from unisphere.services.community import CommunityService


def get_jwt_service(request: Request) -> JWTService:
    return request.app.state.jwt


def get_hub(request: Request) -> Hub:
    return request.app.state.hub


def get_storage(request: Request):
    return request.app.state.storage


async def get_current_user(
        authorization: str | None = Header(default=None),
        session: AsyncSession = Depends(get_async_session),
        jwt_service: JWTService = Depends(get_jwt_service),
) -> User:
    token = extract_bearer_token(authorization)
    claims = jwt_service.decode_access_token(token)

    user = await session.get(User, claims.user_id)
    if not user:
        raise InvalidToken("user not found")
    if not user.is_active:
        raise Unauthorized("account is deactivated")

    return user


def get_auth_service(
        session: AsyncSession = Depends(get_async_session),
        jwt_service: JWTService = Depends(get_jwt_service),
) -> AuthService:
    return AuthService(session, jwt_service)


def get_chat_service(
        session: AsyncSession = Depends(get_async_session),
        hub: Hub = Depends(get_hub),
        storage=Depends(get_storage),
) -> ChatService:
    return ChatService(session, hub, storage, max_file_bytes=settings.CHAT_FILE_MAX_BYTES)


def get_community_service(
        session: AsyncSession = Depends(get_async_session),
        storage=Depends(get_storage),
) -> CommunityService:
    return CommunityService(session, storage)
