import enum
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unisphere.database import Base, BigIntPK
from unisphere.models.file import File
from unisphere.models.user import User


class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    FILE = "FILE"


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        CheckConstraint("message_type IN ('TEXT', 'FILE')", name="ck_chat_messages_type"),
        CheckConstraint(
            "(message_type = 'TEXT' AND file_id IS NULL) OR (message_type = 'FILE' AND file_id IS NOT NULL)",
            name="ck_chat_messages_file",
        ),
        Index("idx_chat_messages_community_created", "community_id", "created_at"),
    )

    # server-assigned sequence; ordering by id matches ordering by created_at
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), index=True, nullable=False)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    file_id: Mapped[int | None] = mapped_column(ForeignKey("files.id", ondelete="CASCADE"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    sender: Mapped[User] = relationship(User, lazy="raise")
    file: Mapped[File | None] = relationship(File, lazy="raise")
