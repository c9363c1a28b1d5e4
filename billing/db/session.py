import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from billing.core.errors import StorageError
from billing.db.mongo import mongodb

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def get_database():
    """Return the active database connection."""
    return mongodb.db


async def run_in_transaction(
    db: AsyncIOMotorDatabase,
    callback: Callable[[AsyncIOMotorClientSession], Awaitable[T]],
) -> T:
    """
    Run callback(session) inside one multi-document transaction.

    The driver retries the whole callback on transient errors such as write
    conflicts, so callbacks must be safe to re-run from the start. Anything
    the callback raises aborts the transaction. Driver failures surface as
    StorageError.
    """
    try:
        async with await db.client.start_session() as session:
            return await session.with_transaction(callback)
    except PyMongoError as e:
        logger.error("Storage transaction failed: %s", e)
        raise StorageError(f"Storage failure: {e}") from e


def storage_errors(func: Callable[..., Awaitable[Any]]):
    """
    Wrap driver errors raised by a repository coroutine in StorageError.

    Calls made with a session= keyword run inside run_in_transaction and must
    let raw driver errors through, so transient write conflicts still get
    retried by the driver.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            if kwargs.get("session") is not None:
                raise
            logger.error("%s failed: %s", func.__qualname__, e)
            raise StorageError(f"Storage failure: {e}") from e

    return wrapper
