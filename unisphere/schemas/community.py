from datetime import datetime

from pydantic import Field

from unisphere.core.timeutil import as_utc
from unisphere.models.community import CommunityParticipant
from unisphere.schemas.common import CamelModel
from unisphere.services.community import CommunityDetail, CommunitySummary


class CommunityCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    abbreviation: str = Field(min_length=1, max_length=50)


class CommunityUpdate(CommunityCreate):
    lead_id: int = Field(gt=0)


class CommunityResponse(CamelModel):
    id: int
    name: str
    abbreviation: str
    lead_id: int
    profile_photo_file_id: int | None = None
    participant_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_summary(cls, summary: CommunitySummary) -> "CommunityResponse":
        community = summary.community
        return cls(
            id=community.id,
            name=community.name,
            abbreviation=community.abbreviation,
            lead_id=community.lead_id,
            profile_photo_file_id=community.profile_photo_file_id,
            participant_count=summary.participant_count,
            created_at=as_utc(community.created_at),
            updated_at=as_utc(community.updated_at),
        )


class ParticipantResponse(CamelModel):
    user_id: int
    joined_at: datetime
    first_name: str | None = None
    last_name: str | None = None

    @classmethod
    def from_participant(cls, participant: CommunityParticipant) -> "ParticipantResponse":
        return cls(
            user_id=participant.user_id,
            joined_at=as_utc(participant.joined_at),
            first_name=participant.user.first_name,
            last_name=participant.user.last_name,
        )


class ParticipantCheckResponse(CamelModel):
    is_participant: bool


class CommunityDetailResponse(CommunityResponse):
    participants: list[ParticipantResponse] = []

    @classmethod
    def from_detail(cls, detail: CommunityDetail) -> "CommunityDetailResponse":
        base = CommunityResponse.from_summary(CommunitySummary(detail.community, len(detail.participants)))
        return cls(
            **base.model_dump(),
            participants=[ParticipantResponse.from_participant(p) for p in detail.participants],
        )
