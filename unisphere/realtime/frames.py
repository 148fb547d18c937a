from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FrameType(str, Enum):
    TEXT = "text"
    FILE = "file"
    DELETE = "delete"
    PING = "ping"
    PONG = "pong"


CONTROL_TYPES = {FrameType.PING.value, FrameType.PONG.value}

PING_PAYLOAD = '{"type":"ping"}'


class Frame(BaseModel):
    """One WebSocket message, in both directions."""

    type: str
    id: int | None = None
    community_id: int | None = None
    sender_id: int | None = None
    content: str | None = None
    file_url: str | None = None
    file_id: int | None = None
    timestamp: datetime | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
