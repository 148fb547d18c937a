from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.core.dberrors import commit_or_raise
from unisphere.models.file import File, ResourceType


class FileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        file_name: str,
        file_path: str,
        file_url: str,
        file_size: int,
        file_type: str,
        resource_type: ResourceType,
        resource_id: int,
        uploaded_by: int,
    ) -> File:
        row = File(
            file_name=file_name,
            file_path=file_path,
            file_url=file_url,
            file_size=file_size,
            file_type=file_type,
            resource_type=resource_type.value,
            resource_id=resource_id,
            uploaded_by=uploaded_by,
        )
        self.session.add(row)
        await commit_or_raise(self.session)
        return row

    async def get(self, file_id: int) -> File | None:
        return await self.session.get(File, file_id)

    async def delete(self, file_id: int) -> bool:
        result = await self.session.execute(
            delete(File).where(File.id == file_id).execution_options(synchronize_session=False)
        )
        await commit_or_raise(self.session)
        return result.rowcount > 0
