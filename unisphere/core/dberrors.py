import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unisphere.core.errors import AppError, ForeignKeyViolation, Internal, UniqueViolation

log = logging.getLogger(__name__)

PG_FOREIGN_KEY_VIOLATION = "23503"
PG_UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # asyncpg errors arrive wrapped by the SQLAlchemy adapter
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def translate_integrity_error(exc: IntegrityError) -> AppError:
    code = _sqlstate(exc)
    text = str(exc.orig)
    if code == PG_FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in text:
        return ForeignKeyViolation()
    if code == PG_UNIQUE_VIOLATION or "UNIQUE constraint failed" in text:
        return UniqueViolation()
    return Internal()


async def commit_or_raise(session: AsyncSession) -> None:
    """Commit, mapping constraint failures onto application errors."""
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        error = translate_integrity_error(exc)
        if isinstance(error, Internal):
            log.error("integrity error: %s", exc.orig)
        raise error from exc


async def flush_or_raise(session: AsyncSession) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        error = translate_integrity_error(exc)
        if isinstance(error, Internal):
            log.error("integrity error: %s", exc.orig)
        raise error from exc
