import logging

from fastapi import APIRouter, WebSocket
from fastapi.responses import JSONResponse

from unisphere.config import settings
from unisphere.core.errors import AppError, BadRequest, InvalidToken, PermissionDenied, Unauthorized
from unisphere.core.security import extract_bearer_token
from unisphere.database import async_session_maker
from unisphere.models.user import User
from unisphere.realtime.session import CLOSE_POLICY_VIOLATION, Session
from unisphere.realtime.transport import StarletteTransport
from unisphere.repositories.communities import ParticipantRepository
from unisphere.repositories.users import UserRepository

log = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


async def deny(websocket: WebSocket, exc: AppError) -> None:
    """Refuse the upgrade with a normal HTTP error response."""
    try:
        await websocket.send_denial_response(JSONResponse(status_code=exc.status_code, content=exc.to_dict()))
    except RuntimeError:
        # server without the denial-response extension
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=exc.message)


async def authenticate(websocket: WebSocket, community_id: int) -> User:
    header = websocket.headers.get("authorization")
    # browsers cannot set headers on the upgrade request
    credential = header or websocket.query_params.get("access_token")
    if not credential:
        raise Unauthorized("missing access token")
    token = extract_bearer_token(credential)
    claims = websocket.app.state.jwt.decode_access_token(token)

    async with async_session_maker() as db:
        user = await UserRepository(db).get(claims.user_id)
        if user is None or not user.is_active:
            raise InvalidToken("user not found")
        if not await ParticipantRepository(db).is_member(community_id, user.id):
            log.info("user %d refused chat socket for community %d: not a member", user.id, community_id)
            raise PermissionDenied()
    return user


@router.websocket("/api/v1/communities/{community_id}/chat/ws")
async def chat_socket(websocket: WebSocket, community_id: str):
    try:
        cid = int(community_id)
        if cid <= 0:
            raise ValueError(community_id)
    except ValueError:
        await deny(websocket, BadRequest("invalid community id"))
        return

    try:
        user = await authenticate(websocket, cid)
    except AppError as exc:
        await deny(websocket, exc)
        return

    await websocket.accept()
    state = websocket.app.state
    session = Session(
        state.hub,
        StarletteTransport(websocket),
        user_id=user.id,
        community_id=cid,
        on_frame=state.message_handler.handle_incoming,
        send_buffer=settings.WS_SEND_BUFFER,
        read_limit=settings.WS_READ_LIMIT_BYTES,
        pong_wait=settings.WS_PONG_WAIT_SECONDS,
        write_wait=settings.WS_WRITE_WAIT_SECONDS,
        ping_period=settings.ws_ping_period,
    )
    await session.serve()
