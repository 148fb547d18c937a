from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.core.errors import ResourceNotFound
from unisphere.models.user import User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def get_or_raise(self, user_id: int) -> User:
        user = await self.get(user_id)
        if user is None:
            raise ResourceNotFound("user")
        return user

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()
