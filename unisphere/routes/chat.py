from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from unisphere.core.deps import get_chat_service, get_current_user
from unisphere.models.user import User
from unisphere.schemas.chat import ChatMessageDetail, ChatMessageResponse, SendTextRequest
from unisphere.services.chat import ChatService

router = APIRouter(
    prefix="/api/v1",
    tags=["Chat"]
)


@router.get("/communities/{community_id}/chat", response_model=list[ChatMessageResponse])
async def list_messages(
    community_id: int,
    before: datetime | None = Query(None),
    after: datetime | None = Query(None),
    sender_id: int | None = Query(None, alias="senderId"),
    limit: int | None = Query(None),
    chat: ChatService = Depends(get_chat_service),
    user: User = Depends(get_current_user),
):
    messages = await chat.list_messages(
        community_id, user, before=before, after=after, sender_id=sender_id, limit=limit
    )
    return [ChatMessageResponse.from_model(m) for m in messages]


@router.post(
    "/communities/{community_id}/chat/text",
    response_model=ChatMessageDetail,
    status_code=status.HTTP_201_CREATED,
)
async def send_text(
    community_id: int,
    payload: SendTextRequest,
    chat: ChatService = Depends(get_chat_service),
    user: User = Depends(get_current_user),
):
    message = await chat.send_text(community_id, user, payload.content, message_type=payload.message_type)
    return ChatMessageDetail.from_model(message)


@router.post(
    "/communities/{community_id}/chat/file",
    response_model=ChatMessageDetail,
    status_code=status.HTTP_201_CREATED,
)
async def send_file(
    community_id: int,
    file: UploadFile = File(...),
    message_type: str = Form("FILE", alias="messageType"),
    content: str | None = Form(None),
    chat: ChatService = Depends(get_chat_service),
    user: User = Depends(get_current_user),
):
    message = await chat.send_file(community_id, user, file, content=content, message_type=message_type)
    return ChatMessageDetail.from_model(message)


@router.get("/chat/messages/{message_id}", response_model=ChatMessageDetail)
async def get_message(
    message_id: int,
    chat: ChatService = Depends(get_chat_service),
    user: User = Depends(get_current_user),
):
    message = await chat.get_message(message_id, user)
    return ChatMessageDetail.from_model(message)


@router.delete("/chat/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    chat: ChatService = Depends(get_chat_service),
    user: User = Depends(get_current_user),
):
    await chat.delete_message(message_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
