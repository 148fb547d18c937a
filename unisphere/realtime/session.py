import asyncio
import enum
import itertools
import logging
from collections import deque
from typing import Awaitable, Callable, Protocol

from pydantic import ValidationError

from unisphere.core.timeutil import utcnow
from unisphere.realtime.frames import CONTROL_TYPES, PING_PAYLOAD, Frame, FrameType
from unisphere.realtime.transport import TransportClosed

log = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_TOO_BIG = 1009
CLOSE_INTERNAL = 1011

_session_ids = itertools.count(1)


class QueueClosed(Exception):
    pass


class SendQueue:
    """Bounded FIFO of serialized frames that can be closed.

    After close(), get() keeps returning buffered items and then None, which is
    how the writer learns it should shut down.
    """

    def __init__(self, maxsize: int = 256):
        self.maxsize = maxsize
        self._items: deque[str] = deque()
        self._closed = False
        self._wakeup = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return len(self._items) >= self.maxsize

    def put_nowait(self, item: str) -> None:
        if self._closed:
            raise QueueClosed()
        if self.full():
            raise asyncio.QueueFull()
        self._items.append(item)
        self._wakeup.set()

    def close(self) -> None:
        self._closed = True
        self._wakeup.set()

    async def get(self) -> str | None:
        while not self._items:
            if self._closed:
                return None
            self._wakeup.clear()
            await self._wakeup.wait()
        return self._items.popleft()

    def drain_nowait(self) -> list[str]:
        items = list(self._items)
        self._items.clear()
        return items


class Transport(Protocol):
    async def receive_text(self) -> str: ...

    async def send_text(self, payload: str) -> None: ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str | None = None) -> None: ...


class SessionState(str, enum.Enum):
    CONNECTING = "CONNECTING"
    LIVE = "LIVE"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


class Session:
    """One live WebSocket connection bound to a (user, community) pair."""

    def __init__(
        self,
        hub,
        transport: Transport,
        user_id: int,
        community_id: int,
        on_frame: Callable[[Frame], Awaitable[object]] | None = None,
        send_buffer: int = 256,
        read_limit: int = 512 * 1024,
        pong_wait: float = 60.0,
        write_wait: float = 10.0,
        ping_period: float | None = None,
    ):
        self.id = next(_session_ids)
        self.hub = hub
        self.transport = transport
        self.user_id = user_id
        self.community_id = community_id
        self.on_frame = on_frame or self._publish
        self.send_queue = SendQueue(send_buffer)
        self.read_limit = read_limit
        self.pong_wait = pong_wait
        self.write_wait = write_wait
        self.ping_period = ping_period if ping_period is not None else pong_wait * 9 / 10
        self.state = SessionState.CONNECTING

    def __repr__(self) -> str:
        return f"Session(id={self.id}, user={self.user_id}, community={self.community_id})"

    async def _publish(self, frame: Frame) -> None:
        self.hub.publish(frame)

    def parse_frame(self, raw: str) -> Frame | None:
        """Validate an inbound frame and stamp it with this session's identity.

        Returns None for frames that must not reach the hub.
        """
        try:
            frame = Frame.model_validate_json(raw)
        except ValidationError as exc:
            log.warning("%r: dropping malformed frame: %s", self, exc.errors()[0].get("msg"))
            return None

        if frame.type in CONTROL_TYPES:
            return None
        if frame.type != FrameType.TEXT.value:
            log.warning("%r: clients may only send text frames, got %r", self, frame.type)
            return None
        if not frame.content or not frame.content.strip():
            log.warning("%r: dropping empty text frame", self)
            return None

        # identity and time come from the connection, never from the client
        return frame.model_copy(
            update={
                "sender_id": self.user_id,
                "community_id": self.community_id,
                "timestamp": utcnow(),
                "id": None,
                "file_url": None,
                "file_id": None,
            }
        )

    async def read_loop(self) -> None:
        while True:
            try:
                raw = await asyncio.wait_for(self.transport.receive_text(), timeout=self.pong_wait)
            except asyncio.TimeoutError:
                log.info("%r: no traffic within %.0fs, closing", self, self.pong_wait)
                await self._close(CLOSE_POLICY_VIOLATION, "pong timeout")
                return
            except TransportClosed:
                return

            if len(raw) > self.read_limit or len(raw.encode("utf-8")) > self.read_limit:
                log.warning("%r: frame exceeds %d bytes, closing", self, self.read_limit)
                await self._close(CLOSE_TOO_BIG, "message too big")
                return

            frame = self.parse_frame(raw)
            if frame is not None:
                await self.on_frame(frame)

    async def _write(self, payload: str) -> None:
        await asyncio.wait_for(self.transport.send_text(payload), timeout=self.write_wait)

    async def write_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.ping_period
        try:
            while True:
                remaining = next_ping - loop.time()
                if remaining <= 0:
                    await self._write(PING_PAYLOAD)
                    next_ping = loop.time() + self.ping_period
                    continue

                try:
                    payload = await asyncio.wait_for(self.send_queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    continue

                if payload is None:
                    self.state = SessionState.CLOSING
                    await self._close(CLOSE_NORMAL)
                    return

                # flush whatever else is already queued in the same cycle
                for item in [payload, *self.send_queue.drain_nowait()]:
                    await self._write(item)
        except (TransportClosed, asyncio.TimeoutError, OSError) as exc:
            log.info("%r: write failed (%s), closing", self, exc.__class__.__name__)
            await self._close(CLOSE_INTERNAL)

    async def _close(self, code: int, reason: str | None = None) -> None:
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSING
        try:
            await asyncio.wait_for(self.transport.close(code, reason), timeout=self.write_wait)
        except (TransportClosed, asyncio.TimeoutError):
            log.debug("%r: close handshake did not complete", self)
        self.state = SessionState.CLOSED

    async def serve(self) -> None:
        """Run the session until either side stops, then leave the hub."""
        self.hub.register(self)
        self.state = SessionState.LIVE
        log.info("%r: live", self)

        writer = asyncio.create_task(self.write_loop(), name=f"session-{self.id}-writer")
        reader = asyncio.create_task(self.read_loop(), name=f"session-{self.id}-reader")
        try:
            await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not reader.done():
                reader.cancel()
            self.hub.unregister(self)
            # the hub closes our queue; the writer drains it and exits
            done, pending = await asyncio.wait({reader, writer}, timeout=self.ping_period + self.write_wait)
            for task in pending:
                log.warning("%r: %s did not stop in time", self, task.get_name())
                task.cancel()
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    log.error("%r: %s failed", self, task.get_name(), exc_info=task.exception())
            if self.state != SessionState.CLOSED:
                await self._close(CLOSE_NORMAL)
            log.info("%r: closed", self)
