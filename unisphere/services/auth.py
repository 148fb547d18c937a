import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.config import settings
from unisphere.core.dberrors import commit_or_raise
from unisphere.core.errors import Forbidden, InvalidCredentials, InvalidToken, TokenExpired, TokenNotFound, TokenRevoked
from unisphere.core.security import JWTService, new_refresh_token, verify_password
from unisphere.core.timeutil import as_utc, utcnow
from unisphere.models.user import User
from unisphere.repositories.tokens import RefreshTokenRepository
from unisphere.repositories.users import UserRepository

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int


async def purge_expired_tokens(db: AsyncSession, now: datetime | None = None) -> int:
    """Delete expired refresh tokens and revoked ones past the retention window."""
    now = now or utcnow()
    cutoff = now - timedelta(days=settings.REVOKED_TOKEN_RETENTION_DAYS)
    removed = await RefreshTokenRepository(db).purge(now=now, revoked_before=cutoff)
    log.info("purged %d refresh token(s)", removed)
    return removed


class AuthService:
    def __init__(self, db: AsyncSession, jwt_service: JWTService, refresh_ttl: timedelta | None = None):
        self.db = db
        self.jwt = jwt_service
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.users = UserRepository(db)
        self.tokens = RefreshTokenRepository(db)

    async def login(self, email: str, password: str) -> TokenPair:
        user = await self.users.get_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            raise InvalidCredentials()
        if not user.is_active:
            raise Forbidden("account is deactivated")
        return await self._issue(user)

    async def _issue(self, user: User) -> TokenPair:
        access = self.jwt.create_access_token(user.id, user.email, user.role)
        refresh = new_refresh_token()
        # commits together with any revocation pending in this session
        await self.tokens.create(user.id, refresh, utcnow() + self.refresh_ttl)
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            expires_in=int(self.jwt.access_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_ttl.total_seconds()),
        )

    async def refresh(self, token: str) -> TokenPair:
        """Exchange a refresh token for a new pair; each token works once."""
        user_id = await self.tokens.consume(token)
        if user_id is None:
            raise await self._classify_rejected(token)

        user = await self.users.get(user_id)
        if user is None or not user.is_active:
            await commit_or_raise(self.db)
            raise InvalidToken("user no longer active")
        return await self._issue(user)

    async def _classify_rejected(self, token: str) -> Exception:
        row = await self.tokens.get(token)
        if row is None:
            return TokenNotFound()
        if row.revoked:
            return TokenRevoked()
        if as_utc(row.expires_at) <= utcnow():
            row.revoked = True
            await commit_or_raise(self.db)
            return TokenExpired()
        return TokenNotFound()

    async def logout(self, token: str) -> None:
        row = await self.tokens.get(token)
        if row is None:
            raise TokenNotFound()
        if not row.revoked:
            await self.tokens.revoke(token)
