"""Shared transaction logic for admin mutations.

Every write runs under the per-target lock, inside one transaction, bounded
by the mutation timeout. Store failures surface as StorageError after a
rollback; validation and lookup errors pass through unchanged.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rights.core.config import settings
from rights.core.database import transaction
from rights.core.errors import StorageError, ValidationError
from rights.core.locks import KeyedLocks, mutation_locks

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_mutation(
    session: AsyncSession,
    lock_key: Hashable,
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    locks: KeyedLocks | None = None,
    timeout: float | None = None,
    **target: Any,
) -> T:
    """Run ``operation`` atomically for one target.

    Args:
        session: Session the operation writes through
        lock_key: Serialization key, e.g. ``("role", 3)``
        operation: Coroutine factory performing reads and writes
        description: Human readable name used in errors and logs
        locks: Lock registry (defaults to the process-wide one)
        timeout: Seconds before the transaction is abandoned
        **target: Identifiers attached to any raised error

    Returns:
        Whatever ``operation`` returns
    """
    registry = locks if locks is not None else mutation_locks
    limit = settings.MUTATION_TIMEOUT_SECONDS if timeout is None else timeout

    async def _atomic() -> T:
        async with transaction(session):
            return await operation()

    async with registry.hold(lock_key):
        try:
            return await asyncio.wait_for(_atomic(), limit)
        except IntegrityError as e:
            logger.warning(f"{description} conflicted with existing rows: {e.orig}")
            raise ValidationError(
                f"{description} conflicts with existing data", **target
            ) from e
        except asyncio.TimeoutError as e:
            logger.error(f"{description} timed out after {limit}s and was rolled back")
            raise StorageError(f"{description} timed out", **target) from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"{description} failed and was rolled back: {e}")
            raise StorageError(f"{description} failed: storage error", **target) from e
