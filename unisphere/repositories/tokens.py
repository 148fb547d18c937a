from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.core.dberrors import commit_or_raise
from unisphere.core.timeutil import utcnow
from unisphere.models.refresh_token import RefreshToken


class RefreshTokenRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: int, token: str, expires_at: datetime) -> RefreshToken:
        row = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        self.session.add(row)
        await commit_or_raise(self.session)
        return row

    async def get(self, token: str) -> RefreshToken | None:
        result = await self.session.execute(select(RefreshToken).where(RefreshToken.token == token))
        return result.scalar_one_or_none()

    async def consume(self, token: str) -> int | None:
        """Revoke a live token in one statement and return its owner.

        Returns None when the token is unknown, revoked or expired; two
        concurrent callers can never both succeed.
        """
        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.token == token,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > utcnow(),
            )
            .values(revoked=True)
            .returning(RefreshToken.user_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def revoke(self, token: str) -> bool:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token == token, RefreshToken.revoked.is_(False))
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await commit_or_raise(self.session)
        return result.rowcount > 0

    async def purge(self, now: datetime, revoked_before: datetime) -> int:
        stmt = delete(RefreshToken).where(
            or_(
                RefreshToken.expires_at < now,
                and_(RefreshToken.revoked.is_(True), RefreshToken.created_at < revoked_before),
            )
        ).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        await commit_or_raise(self.session)
        return result.rowcount
