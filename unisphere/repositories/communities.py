from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from unisphere.core.dberrors import commit_or_raise, flush_or_raise
from unisphere.core.errors import Conflict, NotFound, ResourceNotFound, UniqueViolation
from unisphere.models.community import Community, CommunityParticipant


class CommunityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, community_id: int) -> Community | None:
        return await self.session.get(Community, community_id)

    async def get_or_raise(self, community_id: int) -> Community:
        community = await self.get(community_id)
        if community is None:
            raise ResourceNotFound("community")
        return community

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[Community]:
        result = await self.session.execute(
            select(Community).order_by(Community.id).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def create(self, name: str, abbreviation: str, lead_id: int) -> Community:
        """Create a community with its lead as the first participant."""
        community = Community(name=name, abbreviation=abbreviation, lead_id=lead_id)
        self.session.add(community)
        try:
            await flush_or_raise(self.session)
        except UniqueViolation as exc:
            raise Conflict("community abbreviation already in use") from exc
        self.session.add(CommunityParticipant(community_id=community.id, user_id=lead_id))
        await commit_or_raise(self.session)
        return community

    async def update(self, community: Community, name: str, abbreviation: str, lead_id: int) -> Community:
        """Apply new fields; a new lead gains a membership row in the same commit."""
        community.name = name
        community.abbreviation = abbreviation
        if lead_id != community.lead_id:
            community.lead_id = lead_id
            joined = await self.session.execute(
                select(CommunityParticipant.id).where(
                    CommunityParticipant.community_id == community.id,
                    CommunityParticipant.user_id == lead_id,
                )
            )
            if joined.first() is None:
                self.session.add(CommunityParticipant(community_id=community.id, user_id=lead_id))
        try:
            await commit_or_raise(self.session)
        except UniqueViolation as exc:
            raise Conflict("community abbreviation already in use") from exc
        return community

    async def set_profile_photo(self, community_id: int, file_id: int | None) -> None:
        await self.session.execute(
            update(Community)
            .where(Community.id == community_id)
            .values(profile_photo_file_id=file_id)
            .execution_options(synchronize_session=False)
        )
        await commit_or_raise(self.session)

    async def delete(self, community_id: int) -> bool:
        result = await self.session.execute(
            delete(Community).where(Community.id == community_id).execution_options(synchronize_session=False)
        )
        await commit_or_raise(self.session)
        return result.rowcount > 0


class ParticipantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_member(self, community_id: int, user_id: int) -> bool:
        result = await self.session.execute(
            select(CommunityParticipant.id).where(
                CommunityParticipant.community_id == community_id,
                CommunityParticipant.user_id == user_id,
            )
        )
        return result.first() is not None

    async def add_member(self, community_id: int, user_id: int) -> CommunityParticipant:
        row = CommunityParticipant(community_id=community_id, user_id=user_id)
        self.session.add(row)
        try:
            await commit_or_raise(self.session)
        except UniqueViolation as exc:
            raise Conflict("user is already a member of this community") from exc
        return row

    async def remove_member(self, community_id: int, user_id: int) -> None:
        result = await self.session.execute(
            delete(CommunityParticipant)
            .where(
                CommunityParticipant.community_id == community_id,
                CommunityParticipant.user_id == user_id,
            )
            .execution_options(synchronize_session=False)
        )
        await commit_or_raise(self.session)
        if result.rowcount == 0:
            raise NotFound("user is not a member of this community")

    async def count(self, community_id: int) -> int:
        result = await self.session.execute(
            select(func.count(CommunityParticipant.id)).where(CommunityParticipant.community_id == community_id)
        )
        return result.scalar_one()

    async def count_many(self, community_ids: list[int]) -> dict[int, int]:
        """Participant counts keyed by community; absent ids have no members."""
        if not community_ids:
            return {}
        result = await self.session.execute(
            select(CommunityParticipant.community_id, func.count(CommunityParticipant.id))
            .where(CommunityParticipant.community_id.in_(community_ids))
            .group_by(CommunityParticipant.community_id)
        )
        return {community_id: count for community_id, count in result.all()}

    async def list_communities_for_user(self, user_id: int) -> list[Community]:
        result = await self.session.execute(
            select(Community)
            .join(CommunityParticipant, CommunityParticipant.community_id == Community.id)
            .where(CommunityParticipant.user_id == user_id)
            .order_by(CommunityParticipant.joined_at, Community.id)
        )
        return list(result.scalars().all())

    async def list_members(self, community_id: int) -> list[CommunityParticipant]:
        result = await self.session.execute(
            select(CommunityParticipant)
            .options(joinedload(CommunityParticipant.user))
            .where(CommunityParticipant.community_id == community_id)
            .order_by(CommunityParticipant.joined_at, CommunityParticipant.id)
        )
        return list(result.scalars().all())
