import logging
import mimetypes
import re
import uuid
from pathlib import PurePath

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.core.errors import AppError, BadRequest, PayloadTooLarge
from unisphere.models.file import File, ResourceType
from unisphere.repositories.files import FileRepository

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

OFFICE_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}
CHAT_DOCUMENT_TYPES = {"application/pdf", "text/plain"} | OFFICE_TYPES

_SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]{1,10}$")


def normalize_content_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_chat_upload_allowed(content_type: str) -> bool:
    return content_type.startswith("image/") or content_type in CHAT_DOCUMENT_TYPES


def is_image(content_type: str) -> bool:
    return content_type.startswith("image/")


def safe_extension(filename: str | None, content_type: str) -> str:
    ext = PurePath(filename or "").suffix.lower()
    if _SAFE_EXTENSION.match(ext):
        return ext
    return mimetypes.guess_extension(content_type) or ""


def sub_path_for(resource_type: ResourceType, resource_id: int) -> str:
    return f"{resource_type.value.lower()}_{resource_id}"


async def read_limited(upload: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, failing as soon as it passes max_bytes."""
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise PayloadTooLarge(f"file exceeds the {max_bytes} byte limit")
        chunks.append(chunk)
    return b"".join(chunks)


class FileStore:
    def __init__(self, db: AsyncSession, storage):
        self.storage = storage
        self.files = FileRepository(db)

    async def store(
        self,
        upload: UploadFile,
        resource_type: ResourceType,
        resource_id: int,
        uploaded_by: int,
        max_bytes: int,
        allowed=is_chat_upload_allowed,
    ) -> File:
        content_type = normalize_content_type(upload.content_type)
        if not content_type or not allowed(content_type):
            raise BadRequest(f"file type '{content_type or 'unknown'}' is not allowed")

        data = await read_limited(upload, max_bytes)
        if not data:
            raise BadRequest("file is empty")

        # the client filename is display-only and never touches the disk
        relative_path = f"{sub_path_for(resource_type, resource_id)}/{uuid.uuid4().hex}{safe_extension(upload.filename, content_type)}"
        await run_in_threadpool(self.storage.save, data, relative_path, content_type)

        try:
            return await self.files.create(
                file_name=PurePath(upload.filename or "file").name,
                file_path=relative_path,
                file_url=self.storage.url_for(relative_path),
                file_size=len(data),
                file_type=content_type,
                resource_type=resource_type,
                resource_id=resource_id,
                uploaded_by=uploaded_by,
            )
        except AppError:
            await run_in_threadpool(self.storage.delete, relative_path)
            raise

    async def delete(self, file: File) -> None:
        await self.discard(file.id, file.file_path)

    async def discard(self, file_id: int, file_path: str) -> None:
        """Remove the row and the blob; a blob that is already gone is only logged.

        Takes plain values so it still works after a rollback has expired the File.
        """
        await self.files.delete(file_id)
        removed = await run_in_threadpool(self.storage.delete, file_path)
        if not removed:
            log.warning("file %d: blob %s was already missing", file_id, file_path)

    async def delete_by_id(self, file_id: int) -> bool:
        file = await self.files.get(file_id)
        if file is None:
            return False
        await self.delete(file)
        return True
