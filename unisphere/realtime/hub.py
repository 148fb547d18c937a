import asyncio
import logging

from unisphere.realtime.frames import Frame
from unisphere.realtime.session import QueueClosed

log = logging.getLogger(__name__)

REGISTER = "register"
UNREGISTER = "unregister"
PUBLISH = "publish"


class Hub:
    """In-process fan-out of chat frames to the live sessions of a community.

    All mutations of the session map go through one inbox consumed by a single
    task, so delivery order to any session equals publish order. Publishing
    never waits on a subscriber: a session whose send queue is full is evicted
    and a listener whose buffer is full misses that frame.
    """

    def __init__(self, listener_buffer: int = 256):
        self.listener_buffer = listener_buffer
        self._sessions: dict[int, set] = {}
        self._listeners: list[asyncio.Queue] = []
        self._evicting: set = set()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="hub")
        log.info("hub started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        # closing every queue ends the write loops
        for sessions in self._sessions.values():
            for session in sessions:
                session.send_queue.close()
        self._sessions.clear()
        log.info("hub stopped")

    def register(self, session) -> None:
        self._inbox.put_nowait((REGISTER, session))

    def unregister(self, session) -> None:
        self._inbox.put_nowait((UNREGISTER, session))

    def publish(self, frame: Frame) -> None:
        self._inbox.put_nowait((PUBLISH, frame))

    async def drain(self) -> None:
        """Wait until every command queued so far has been handled."""
        await self._inbox.join()

    def clients_count(self, community_id: int) -> int:
        return len(self._sessions.get(community_id, ()))

    def add_listener(self, maxsize: int | None = None) -> asyncio.Queue:
        listener: asyncio.Queue = asyncio.Queue(maxsize=maxsize or self.listener_buffer)
        self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: asyncio.Queue) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def run(self) -> None:
        while True:
            op, obj = await self._inbox.get()
            try:
                if op == REGISTER:
                    self._register(obj)
                elif op == UNREGISTER:
                    self._unregister(obj)
                elif op == PUBLISH:
                    self._broadcast(obj)
            except Exception:
                log.exception("hub failed to handle %s", op)
            finally:
                self._inbox.task_done()

    def _register(self, session) -> None:
        self._sessions.setdefault(session.community_id, set()).add(session)
        log.info(
            "registered %r, %d client(s) in community %d",
            session, self.clients_count(session.community_id), session.community_id,
        )

    def _unregister(self, session) -> None:
        sessions = self._sessions.get(session.community_id)
        if sessions is not None and session in sessions:
            sessions.discard(session)
            if not sessions:
                del self._sessions[session.community_id]
            log.info("unregistered %r", session)
        self._evicting.discard(session)
        session.send_queue.close()

    def _broadcast(self, frame: Frame) -> None:
        for listener in list(self._listeners):
            try:
                listener.put_nowait(frame.model_copy())
            except asyncio.QueueFull:
                log.warning("listener buffer full, skipping %s frame %s", frame.type, frame.id)

        sessions = self._sessions.get(frame.community_id)
        if not sessions:
            return

        payload = frame.to_json()
        log.debug("broadcasting %s frame %s to %d client(s)", frame.type, frame.id, len(sessions))
        for session in list(sessions):
            if session in self._evicting:
                continue
            try:
                session.send_queue.put_nowait(payload)
            except asyncio.QueueFull:
                log.warning("%r is not keeping up, evicting", session)
                self._evict(session)
            except QueueClosed:
                self._evict(session)

    def _evict(self, session) -> None:
        self._evicting.add(session)
        self._inbox.put_nowait((UNREGISTER, session))
