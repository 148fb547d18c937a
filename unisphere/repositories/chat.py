from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from unisphere.core.dberrors import commit_or_raise
from unisphere.core.errors import ResourceNotFound
from unisphere.core.timeutil import as_utc
from unisphere.models.chat_message import ChatMessage, MessageType

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200


def normalize_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_HISTORY_LIMIT
    return min(limit, MAX_HISTORY_LIMIT)


class ChatRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        community_id: int,
        sender_id: int,
        message_type: MessageType,
        content: str,
        file_id: int | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            community_id=community_id,
            sender_id=sender_id,
            message_type=message_type.value,
            content=content,
            file_id=file_id,
        )
        self.session.add(message)
        await commit_or_raise(self.session)
        return message

    async def get(self, message_id: int) -> ChatMessage:
        result = await self.session.execute(
            select(ChatMessage)
            .options(joinedload(ChatMessage.sender), joinedload(ChatMessage.file))
            .where(ChatMessage.id == message_id)
            .execution_options(populate_existing=True)
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise ResourceNotFound("chat message")
        return message

    async def list_by_community(
        self,
        community_id: int,
        before: datetime | None = None,
        after: datetime | None = None,
        sender_id: int | None = None,
        limit: int | None = None,
    ) -> list[ChatMessage]:
        limit = normalize_limit(limit)
        if limit <= 0:
            return []

        stmt = (
            select(ChatMessage)
            .options(joinedload(ChatMessage.sender), joinedload(ChatMessage.file))
            .where(ChatMessage.community_id == community_id)
        )
        if before is not None:
            stmt = stmt.where(ChatMessage.created_at < as_utc(before))
        if after is not None:
            stmt = stmt.where(ChatMessage.created_at > as_utc(after))
        if sender_id is not None:
            stmt = stmt.where(ChatMessage.sender_id == sender_id)
        stmt = stmt.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete(self, message_id: int) -> bool:
        result = await self.session.execute(
            delete(ChatMessage).where(ChatMessage.id == message_id).execution_options(synchronize_session=False)
        )
        await commit_or_raise(self.session)
        return result.rowcount > 0

    async def file_ids_for_community(self, community_id: int) -> list[int]:
        result = await self.session.execute(
            select(ChatMessage.file_id).where(
                ChatMessage.community_id == community_id,
                ChatMessage.file_id.is_not(None),
            )
        )
        return [file_id for (file_id,) in result.all()]

    async def delete_by_community(self, community_id: int) -> int:
        result = await self.session.execute(
            delete(ChatMessage)
            .where(ChatMessage.community_id == community_id)
            .execution_options(synchronize_session=False)
        )
        await commit_or_raise(self.session)
        return result.rowcount
