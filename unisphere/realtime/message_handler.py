import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unisphere.core.errors import AppError
from unisphere.core.timeutil import as_utc
from unisphere.models.chat_message import MessageType
from unisphere.realtime.frames import Frame, FrameType
from unisphere.realtime.hub import Hub
from unisphere.repositories.chat import ChatRepository

log = logging.getLogger(__name__)


class MessageHandler:
    """Persists chat frames that arrive over WebSocket.

    Frames read by a session go through handle_incoming(): stored first, then
    published with their server id. The hub listener tap additionally stores
    any text frame published without an id. File frames are never stored here;
    they only originate from the upload endpoint, which has saved them already.
    """

    def __init__(self, hub: Hub, session_factory: async_sessionmaker[AsyncSession], db_timeout: float = 5.0):
        self.hub = hub
        self.session_factory = session_factory
        self.db_timeout = db_timeout
        self._listener: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._listener = self.hub.add_listener()
        self._task = asyncio.create_task(self._consume(), name="message-handler")

    async def stop(self) -> None:
        if self._listener is not None:
            self.hub.remove_listener(self._listener)
            self._listener = None
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _store(self, frame: Frame) -> Frame:
        async with self.session_factory() as db:
            message = await ChatRepository(db).append(
                community_id=frame.community_id,
                sender_id=frame.sender_id,
                message_type=MessageType.TEXT,
                content=frame.content,
            )
        return frame.model_copy(update={"id": message.id, "timestamp": as_utc(message.created_at)})

    async def persist(self, frame: Frame) -> Frame | None:
        try:
            return await asyncio.wait_for(self._store(frame), timeout=self.db_timeout)
        except AppError as exc:
            log.warning(
                "could not store frame from user %s in community %s: %s",
                frame.sender_id, frame.community_id, exc.message,
            )
        except (SQLAlchemyError, asyncio.TimeoutError, OSError):
            log.exception("could not store frame from user %s in community %s", frame.sender_id, frame.community_id)
        return None

    async def handle_incoming(self, frame: Frame) -> Frame | None:
        stored = await self.persist(frame)
        if stored is None:
            return None
        self.hub.publish(stored)
        return stored

    async def _consume(self) -> None:
        while True:
            frame = await self._listener.get()
            if frame.type != FrameType.TEXT.value or frame.id is not None:
                continue
            stored = await self.persist(frame)
            if stored is not None:
                log.debug("stored tapped frame as message %d", stored.id)
