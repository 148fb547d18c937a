from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status

from unisphere.core.deps import get_community_service, get_current_user
from unisphere.models.user import User
from unisphere.schemas.community import (
    CommunityCreate,
    CommunityDetailResponse,
    CommunityResponse,
    CommunityUpdate,
    ParticipantCheckResponse,
    ParticipantResponse,
)
from unisphere.schemas.file import FileResponse
from unisphere.services.community import CommunityService, CommunitySummary

router = APIRouter(
    prefix="/api/v1/communities",
    tags=["Communities"]
)


@router.get("", response_model=list[CommunityResponse])
async def list_communities(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    summaries = await service.list_communities(limit=limit, offset=offset)
    return [CommunityResponse.from_summary(s) for s in summaries]


@router.post("", response_model=CommunityResponse, status_code=status.HTTP_201_CREATED)
async def create_community(
    payload: CommunityCreate,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    community = await service.create(user, payload.name, payload.abbreviation)
    return CommunityResponse.from_summary(CommunitySummary(community, 1))


#-----------Communities of the caller-----------------

@router.get("/joined", response_model=list[CommunityResponse])
async def joined_communities(
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    summaries = await service.list_joined(user)
    return [CommunityResponse.from_summary(s) for s in summaries]


@router.get("/{community_id}", response_model=CommunityDetailResponse)
async def get_community(
    community_id: int,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    detail = await service.get_detail(community_id)
    return CommunityDetailResponse.from_detail(detail)


@router.put("/{community_id}", response_model=CommunityResponse)
async def update_community(
    community_id: int,
    payload: CommunityUpdate,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    summary = await service.update(community_id, user, payload.name, payload.abbreviation, payload.lead_id)
    return CommunityResponse.from_summary(summary)


@router.delete("/{community_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_community(
    community_id: int,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    await service.delete(community_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


#-----------Membership-------------

@router.post("/{community_id}/join", status_code=status.HTTP_204_NO_CONTENT)
async def join_community(
    community_id: int,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    await service.join(community_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{community_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_community(
    community_id: int,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    await service.leave(community_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{community_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(
    community_id: int,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    participants = await service.list_participants(community_id)
    return [ParticipantResponse.from_participant(p) for p in participants]


@router.get("/{community_id}/participants/check", response_model=ParticipantCheckResponse)
async def check_participant(
    community_id: int,
    user_id: int = Query(..., alias="userId", gt=0),
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    return ParticipantCheckResponse(is_participant=await service.is_participant(community_id, user_id))


#-----------Profile photo-------------

@router.post("/{community_id}/profile-photo", response_model=FileResponse)
async def update_profile_photo(
    community_id: int,
    photo: UploadFile = File(...),
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    file = await service.update_profile_photo(community_id, user, photo)
    return FileResponse.model_validate(file)


@router.delete("/{community_id}/profile-photo", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile_photo(
    community_id: int,
    service: CommunityService = Depends(get_community_service),
    user: User = Depends(get_current_user),
):
    await service.delete_profile_photo(community_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
