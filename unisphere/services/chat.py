import logging
from datetime import datetime

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.config import settings
from unisphere.core.errors import AppError, BadRequest
from unisphere.core.timeutil import as_utc, utcnow
from unisphere.models.chat_message import ChatMessage, MessageType
from unisphere.models.file import ResourceType
from unisphere.models.user import User
from unisphere.realtime.frames import Frame, FrameType
from unisphere.realtime.hub import Hub
from unisphere.repositories.chat import ChatRepository
from unisphere.repositories.communities import CommunityRepository
from unisphere.services.authorization import AuthorizationService
from unisphere.services.files import FileStore, is_chat_upload_allowed

log = logging.getLogger(__name__)


class ChatService:
    """Chat operations for an authenticated caller.

    Every write is persisted before it is published, so frames reaching live
    sessions always carry the server-assigned id.
    """

    def __init__(self, db: AsyncSession, hub: Hub, storage, max_file_bytes: int | None = None):
        self.db = db
        self.hub = hub
        self.messages = ChatRepository(db)
        self.communities = CommunityRepository(db)
        self.files = FileStore(db, storage)
        self.authz = AuthorizationService(db)
        self.max_file_bytes = max_file_bytes or settings.CHAT_FILE_MAX_BYTES

    async def _require_member(self, community_id: int, user: User) -> None:
        await self.communities.get_or_raise(community_id)
        await self.authz.require_community_member(community_id, user)

    async def send_text(self, community_id: int, user: User, content: str, message_type: str = "TEXT") -> ChatMessage:
        if message_type != MessageType.TEXT.value:
            raise BadRequest("messageType must be TEXT")
        if not content or not content.strip():
            raise BadRequest("content must not be empty")
        await self._require_member(community_id, user)

        message = await self.messages.append(community_id, user.id, MessageType.TEXT, content)
        self.hub.publish(
            Frame(
                type=FrameType.TEXT.value,
                id=message.id,
                community_id=community_id,
                sender_id=user.id,
                content=message.content,
                timestamp=as_utc(message.created_at),
            )
        )
        return await self.messages.get(message.id)

    async def send_file(
        self,
        community_id: int,
        user: User,
        upload: UploadFile,
        content: str | None = None,
        message_type: str = "FILE",
    ) -> ChatMessage:
        if message_type != MessageType.FILE.value:
            raise BadRequest("messageType must be FILE")
        await self._require_member(community_id, user)

        file = await self.files.store(
            upload,
            ResourceType.CHAT_MESSAGE,
            community_id,
            uploaded_by=user.id,
            max_bytes=self.max_file_bytes,
            allowed=is_chat_upload_allowed,
        )
        # a failed insert rolls back and expires `file`
        file_id, file_path, file_url = file.id, file.file_path, file.file_url
        text = (content or "").strip() or file.file_name
        try:
            message = await self.messages.append(community_id, user.id, MessageType.FILE, text, file_id=file_id)
        except (AppError, SQLAlchemyError):
            log.warning("community %d: message insert failed, removing uploaded file %d", community_id, file_id)
            await self.db.rollback()
            await self.files.discard(file_id, file_path)
            raise

        self.hub.publish(
            Frame(
                type=FrameType.FILE.value,
                id=message.id,
                community_id=community_id,
                sender_id=user.id,
                content=text,
                file_url=file_url,
                file_id=file_id,
                timestamp=as_utc(message.created_at),
            )
        )
        return await self.messages.get(message.id)

    async def list_messages(
        self,
        community_id: int,
        user: User,
        before: datetime | None = None,
        after: datetime | None = None,
        sender_id: int | None = None,
        limit: int | None = None,
    ) -> list[ChatMessage]:
        await self._require_member(community_id, user)
        return await self.messages.list_by_community(
            community_id, before=before, after=after, sender_id=sender_id, limit=limit
        )

    async def get_message(self, message_id: int, user: User) -> ChatMessage:
        message = await self.messages.get(message_id)
        await self.authz.require_community_member(message.community_id, user)
        return message

    async def delete_message(self, message_id: int, user: User) -> None:
        message = await self.messages.get(message_id)
        community = await self.communities.get_or_raise(message.community_id)
        self.authz.can_modify_chat_message(message, user, community)

        await self.messages.delete(message_id)
        if message.file is not None:
            await self.files.delete(message.file)

        self.hub.publish(
            Frame(
                type=FrameType.DELETE.value,
                id=message_id,
                community_id=message.community_id,
                sender_id=user.id,
                timestamp=utcnow(),
            )
        )
