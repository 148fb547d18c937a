import logging

from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.core.errors import PermissionDenied, ResourceNotFound
from unisphere.models.chat_message import ChatMessage
from unisphere.models.community import Community
from unisphere.models.user import Role, User
from unisphere.repositories.catalog import CatalogRepository
from unisphere.repositories.communities import ParticipantRepository

log = logging.getLogger(__name__)


def deny_permission(user: User, reason: str) -> PermissionDenied:
    # the reason stays in the server log
    log.info("permission denied for user %s: %s", user.id, reason)
    return PermissionDenied()


class AuthorizationService:
    """Role and ownership policy. Checks return True or raise."""

    def __init__(self, db: AsyncSession):
        self.catalog = CatalogRepository(db)
        self.participants = ParticipantRepository(db)

    @staticmethod
    def is_instructor(user: User) -> bool:
        return user.role == Role.INSTRUCTOR.value

    @staticmethod
    def is_admin(user: User) -> bool:
        return user.role == Role.ADMIN.value

    async def can_modify_past_exam(self, exam_id: int, user: User) -> bool:
        exam = await self.catalog.get_past_exam(exam_id)
        if exam is None:
            raise ResourceNotFound("past exam")
        if not self.is_instructor(user):
            raise deny_permission(user, f"not an instructor, cannot modify past exam {exam_id}")
        instructor = await self.catalog.get_instructor_by_user(user.id)
        if instructor is None:
            raise ResourceNotFound("instructor")
        if exam.instructor_id != instructor.id:
            raise deny_permission(user, f"past exam {exam_id} belongs to instructor {exam.instructor_id}")
        return True

    async def can_modify_class_note(self, note_id: int, user: User) -> bool:
        note = await self.catalog.get_class_note(note_id)
        if note is None:
            raise ResourceNotFound("class note")
        if note.user_id != user.id:
            raise deny_permission(user, f"class note {note_id} was uploaded by user {note.user_id}")
        return True

    def can_modify_chat_message(self, message: ChatMessage, user: User, community: Community) -> bool:
        if message.sender_id == user.id or community.lead_id == user.id:
            return True
        raise deny_permission(user, f"neither sender nor lead for chat message {message.id}")

    async def is_community_member(self, community_id: int, user_id: int) -> bool:
        return await self.participants.is_member(community_id, user_id)

    async def require_community_member(self, community_id: int, user: User) -> bool:
        if not await self.is_community_member(community_id, user.id):
            raise deny_permission(user, f"not a member of community {community_id}")
        return True
