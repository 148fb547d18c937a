from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState


class TransportClosed(Exception):
    def __init__(self, code: int | None = None):
        self.code = code
        super().__init__(f"transport closed (code={code})")


class StarletteTransport:
    """Adapts a Starlette WebSocket to the session's text transport.

    Every flavour of "the peer is gone" surfaces as TransportClosed.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._closed = False

    @property
    def closed(self) -> bool:
        return (
            self._closed
            or self.websocket.client_state == WebSocketState.DISCONNECTED
            or self.websocket.application_state == WebSocketState.DISCONNECTED
        )

    async def receive_text(self) -> str:
        if self.closed:
            raise TransportClosed()
        try:
            message = await self.websocket.receive()
        except (RuntimeError, OSError) as exc:
            self._closed = True
            raise TransportClosed() from exc

        if message["type"] == "websocket.disconnect":
            self._closed = True
            raise TransportClosed(message.get("code"))
        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"].decode("utf-8", errors="replace")
        return ""

    async def send_text(self, payload: str) -> None:
        if self.closed:
            raise TransportClosed()
        try:
            await self.websocket.send_text(payload)
        except WebSocketDisconnect as exc:
            self._closed = True
            raise TransportClosed(exc.code) from exc
        except (RuntimeError, OSError) as exc:
            self._closed = True
            raise TransportClosed() from exc

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if self.closed:
            return
        self._closed = True
        try:
            await self.websocket.close(code=code, reason=reason)
        except (WebSocketDisconnect, RuntimeError, OSError):
            # peer already went away
            return
