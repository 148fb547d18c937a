from fastapi import APIRouter, Depends, Response, status

from unisphere.models.user import User
from unisphere.schemas.auth import LoginRequest, RefreshRequest, TokenResponse
from unisphere.schemas.user import UserRead
from unisphere.services.auth import AuthService, TokenPair

from unisphere.core.deps import get_auth_service, get_current_user

router = APIRouter(
    prefix="/api/v1/auth",
    tags=["Auth"]
)


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        refresh_expires_in=pair.refresh_expires_in,
    )


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    pair = await auth.login(payload.email, payload.password)
    return _token_response(pair)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(payload: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    # the presented token is revoked in the same commit that stores its successor
    pair = await auth.refresh(payload.refresh_token)
    return _token_response(pair)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(payload: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    await auth.logout(payload.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserRead)
async def read_me(current_user: User = Depends(get_current_user)):
    return UserRead.model_validate(current_user)
