import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, ForeignKey, Index, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from unisphere.database import Base, BigIntPK


class ResourceType(str, enum.Enum):
    CLASS_NOTE = "CLASS_NOTE"
    PAST_EXAM = "PAST_EXAM"
    PROFILE_PHOTO = "PROFILE_PHOTO"
    CHAT_MESSAGE = "CHAT_MESSAGE"
    COMMUNITY = "COMMUNITY"
    COMMUNITY_PROFILE_PHOTO = "COMMUNITY_PROFILE_PHOTO"


class File(Base):
    __tablename__ = "files"
    __table_args__ = (Index("idx_files_resource", "resource_type", "resource_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # relative to the storage root
    file_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    file_type: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
