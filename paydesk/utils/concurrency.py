"""
PayDesk - Write Serialisation and Retry

Every write batch for an account runs inside one critical section:
- an in-process asyncio.Lock per account (ScopeLockRegistry)
- a SELECT ... FOR UPDATE on the account row, which serialises writers
  across processes on PostgreSQL (SQLite ignores it)

The batch is committed once at the end. Any failure rolls back the whole
batch; transient connection failures are retried with linear backoff.
"""

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.config import settings
from paydesk.models.account import Account
from paydesk.utils.error_handling import (
    AccountNotFoundException,
    ConnectionException,
    DatabaseException,
    DataIntegrityException,
    is_connection_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopeLockRegistry:
    """Hands out one asyncio.Lock per account id."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, scope_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(scope_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[scope_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, scope_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self.lock_for(scope_id)
        async with lock:
            yield


scope_locks = ScopeLockRegistry()


async def lock_account_row(db: AsyncSession, account_id: uuid.UUID) -> Account:
    """Load the account row with FOR UPDATE, or raise AccountNotFoundException."""
    result = await db.execute(
        select(Account).where(Account.id == account_id).with_for_update()
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFoundException(account_id)
    return account


async def run_write_batch(
    db: AsyncSession,
    account_id: uuid.UUID,
    work: Callable[[], Awaitable[T]],
    *,
    description: str = "write batch",
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
    locks: Optional[ScopeLockRegistry] = None,
) -> T:
    """
    Run ``work`` as one atomic unit inside the account's write section.

    ``work`` must do its own reads: it is called again from scratch after a
    retried connection failure, once the previous attempt was rolled back.
    """
    attempts_allowed = max_retries if max_retries is not None else settings.db_max_retries
    delay = retry_delay if retry_delay is not None else settings.db_retry_delay_seconds
    registry = locks or scope_locks

    async with registry.hold(account_id):
        attempt = 0
        while True:
            attempt += 1
            try:
                await lock_account_row(db, account_id)
                result = await work()
                await db.commit()
                return result
            except IntegrityError as e:
                await db.rollback()
                logger.error(f"{description} for account {account_id} violated a constraint", exc_info=True)
                raise DataIntegrityException(
                    f"{description} rejected by a database constraint", original_error=e
                )
            except (SQLAlchemyError, ConnectionError, TimeoutError) as e:
                await db.rollback()
                if not is_connection_error(e):
                    logger.error(f"{description} for account {account_id} failed", exc_info=True)
                    raise DatabaseException(f"{description} failed", original_error=e)
                if attempt >= attempts_allowed:
                    logger.error(
                        f"{description} for account {account_id} gave up after {attempt} attempts",
                        exc_info=True,
                    )
                    raise ConnectionException(
                        f"Database unavailable during {description}",
                        original_error=e,
                        attempts=attempt,
                    )
                wait = delay * attempt
                logger.warning(
                    f"{description} for account {account_id}: connection failure "
                    f"(attempt {attempt}/{attempts_allowed}), retrying in {wait:.1f}s"
                )
                await asyncio.sleep(wait)
            except Exception:
                await db.rollback()
                raise
