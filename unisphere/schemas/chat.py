from datetime import datetime

from pydantic import Field

from unisphere.core.timeutil import as_utc
from unisphere.models.chat_message import ChatMessage
from unisphere.schemas.common import CamelModel
from unisphere.schemas.file import FileResponse
from unisphere.schemas.user import UserBasic


class SendTextRequest(CamelModel):
    message_type: str = "TEXT"
    content: str = Field(max_length=10_000)


class ChatMessageResponse(CamelModel):
    id: int
    community_id: int
    sender_id: int
    message_type: str
    content: str
    file_id: int | None = None
    created_at: datetime
    updated_at: datetime
    sender_name: str | None = None
    file_name: str | None = None
    file_url: str | None = None
    file_type: str | None = None

    @classmethod
    def from_model(cls, message: ChatMessage) -> "ChatMessageResponse":
        # sender and file must be eagerly loaded
        file = message.file
        return cls(
            id=message.id,
            community_id=message.community_id,
            sender_id=message.sender_id,
            message_type=message.message_type,
            content=message.content,
            file_id=message.file_id,
            created_at=as_utc(message.created_at),
            updated_at=as_utc(message.updated_at),
            sender_name=message.sender.full_name if message.sender else None,
            file_name=file.file_name if file else None,
            file_url=file.file_url if file else None,
            file_type=file.file_type if file else None,
        )


class ChatMessageDetail(ChatMessageResponse):
    sender: UserBasic | None = None
    file: FileResponse | None = None

    @classmethod
    def from_model(cls, message: ChatMessage) -> "ChatMessageDetail":
        base = ChatMessageResponse.from_model(message)
        return cls(
            **base.model_dump(),
            sender=UserBasic.model_validate(message.sender) if message.sender else None,
            file=FileResponse.model_validate(message.file) if message.file else None,
        )
