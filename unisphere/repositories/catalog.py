from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.models.catalog import ClassNote, Instructor, PastExam


class CatalogRepository:
    """Read access to the catalog rows ownership checks depend on."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_instructor_by_user(self, user_id: int) -> Instructor | None:
        result = await self.session.execute(select(Instructor).where(Instructor.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_past_exam(self, exam_id: int) -> PastExam | None:
        return await self.session.get(PastExam, exam_id)

    async def get_class_note(self, note_id: int) -> ClassNote | None:
        return await self.session.get(ClassNote, note_id)
