import logging
from dataclasses import dataclass

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.config import settings
from unisphere.core.errors import AppError, BadRequest, Conflict, ResourceNotFound
from unisphere.models.community import Community, CommunityParticipant
from unisphere.models.file import File, ResourceType
from unisphere.models.user import User
from unisphere.repositories.chat import ChatRepository
from unisphere.repositories.communities import CommunityRepository, ParticipantRepository
from unisphere.repositories.users import UserRepository
from unisphere.services.authorization import AuthorizationService, deny_permission
from unisphere.services.files import FileStore, is_image

log = logging.getLogger(__name__)


@dataclass
class CommunitySummary:
    community: Community
    participant_count: int


@dataclass
class CommunityDetail:
    community: Community
    participants: list[CommunityParticipant]


class CommunityService:
    def __init__(self, db: AsyncSession, storage):
        self.db = db
        self.communities = CommunityRepository(db)
        self.participants = ParticipantRepository(db)
        self.users = UserRepository(db)
        self.messages = ChatRepository(db)
        self.files = FileStore(db, storage)
        self.authz = AuthorizationService(db)

    async def _summaries(self, communities: list[Community]) -> list[CommunitySummary]:
        counts = await self.participants.count_many([c.id for c in communities])
        return [CommunitySummary(c, counts.get(c.id, 0)) for c in communities]

    async def list_communities(self, limit: int = 50, offset: int = 0) -> list[CommunitySummary]:
        return await self._summaries(await self.communities.list_all(limit=limit, offset=offset))

    async def list_joined(self, user: User) -> list[CommunitySummary]:
        return await self._summaries(await self.participants.list_communities_for_user(user.id))

    async def get_detail(self, community_id: int) -> CommunityDetail:
        community = await self.communities.get_or_raise(community_id)
        participants = await self.participants.list_members(community_id)
        return CommunityDetail(community, participants)

    async def create(self, user: User, name: str, abbreviation: str) -> Community:
        name, abbreviation = name.strip(), abbreviation.strip()
        if not name or not abbreviation:
            raise BadRequest("name and abbreviation are required")
        community = await self.communities.create(name, abbreviation, lead_id=user.id)
        log.info("user %d created community %d", user.id, community.id)
        return community

    def _require_lead_or_admin(self, community: Community, user: User) -> None:
        if community.lead_id != user.id and not self.authz.is_admin(user):
            raise deny_permission(user, f"not lead of community {community.id}")

    async def delete(self, community_id: int, user: User) -> None:
        community = await self.communities.get_or_raise(community_id)
        self._require_lead_or_admin(community, user)

        file_ids = await self.messages.file_ids_for_community(community_id)
        if community.profile_photo_file_id is not None:
            file_ids.append(community.profile_photo_file_id)

        await self.messages.delete_by_community(community_id)
        await self.communities.delete(community_id)
        log.info("user %d deleted community %d", user.id, community_id)

        # best effort, a failed delete leaves an orphaned blob
        for file_id in file_ids:
            try:
                await self.files.delete_by_id(file_id)
            except Exception:
                log.exception("community %d: could not delete file %d", community_id, file_id)

    async def update(self, community_id: int, user: User, name: str, abbreviation: str, lead_id: int) -> CommunitySummary:
        community = await self.communities.get_or_raise(community_id)
        self._require_lead_or_admin(community, user)
        name, abbreviation = name.strip(), abbreviation.strip()
        if not name or not abbreviation:
            raise BadRequest("name and abbreviation are required")
        await self.users.get_or_raise(lead_id)

        previous_lead = community.lead_id
        community = await self.communities.update(community, name, abbreviation, lead_id)
        if previous_lead != lead_id:
            log.info("community %d: lead changed from %d to %d by user %d", community_id, previous_lead, lead_id, user.id)
        return CommunitySummary(community, await self.participants.count(community_id))

    async def list_participants(self, community_id: int) -> list[CommunityParticipant]:
        await self.communities.get_or_raise(community_id)
        return await self.participants.list_members(community_id)

    async def is_participant(self, community_id: int, user_id: int) -> bool:
        await self.communities.get_or_raise(community_id)
        await self.users.get_or_raise(user_id)
        return await self.participants.is_member(community_id, user_id)

    async def join(self, community_id: int, user: User) -> None:
        await self.communities.get_or_raise(community_id)
        await self.participants.add_member(community_id, user.id)
        log.info("user %d joined community %d", user.id, community_id)

    async def leave(self, community_id: int, user: User) -> None:
        community = await self.communities.get_or_raise(community_id)
        if community.lead_id == user.id:
            raise Conflict("the community lead cannot leave the community")
        if not await self.participants.is_member(community_id, user.id):
            raise Conflict("user is not a member of this community")
        await self.participants.remove_member(community_id, user.id)
        log.info("user %d left community %d", user.id, community_id)

    async def update_profile_photo(self, community_id: int, user: User, upload: UploadFile) -> File:
        community = await self.communities.get_or_raise(community_id)
        self._require_lead_or_admin(community, user)
        previous = community.profile_photo_file_id

        photo = await self.files.store(
            upload,
            ResourceType.COMMUNITY_PROFILE_PHOTO,
            community_id,
            uploaded_by=user.id,
            max_bytes=settings.PROFILE_PHOTO_MAX_BYTES,
            allowed=is_image,
        )
        photo_id, photo_path = photo.id, photo.file_path
        try:
            await self.communities.set_profile_photo(community_id, photo_id)
        except (AppError, SQLAlchemyError):
            log.warning("community %d: linking profile photo failed, removing file %d", community_id, photo_id)
            await self.db.rollback()
            await self.files.discard(photo_id, photo_path)
            raise

        if previous is not None:
            try:
                await self.files.delete_by_id(previous)
            except Exception:
                log.exception("community %d: could not delete old profile photo %d", community_id, previous)
        return photo

    async def delete_profile_photo(self, community_id: int, user: User) -> None:
        community = await self.communities.get_or_raise(community_id)
        self._require_lead_or_admin(community, user)
        if community.profile_photo_file_id is None:
            raise ResourceNotFound("profile photo")

        photo_id = community.profile_photo_file_id
        await self.communities.set_profile_photo(community_id, None)
        await self.files.delete_by_id(photo_id)
