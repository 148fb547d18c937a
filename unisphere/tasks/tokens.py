import asyncio
import logging

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from unisphere.database import async_session_maker, engine
from unisphere.services.auth import purge_expired_tokens

log = logging.getLogger(__name__)


async def _purge() -> int:
    try:
        async with async_session_maker() as db:
            return await purge_expired_tokens(db)
    finally:
        # the worker's event loop ends with this call; pooled connections must not outlive it
        await engine.dispose()


@shared_task(name="unisphere.tasks.tokens.purge_refresh_tokens")
def purge_refresh_tokens():
    """
    Delete expired and long-revoked refresh tokens
    """
    try:
        removed = asyncio.run(_purge())
    except SQLAlchemyError as e:
        log.exception("[tokens] purge failed")
        return {"ok": False, "reason": f"db_error: {e}"}
    return {"ok": True, "removed": removed}
