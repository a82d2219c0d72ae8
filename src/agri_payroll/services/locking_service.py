"""Transaction boundaries with bounded retry on lock contention."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agri_payroll.config import get_settings
from agri_payroll.database import get_session_factory
from agri_payroll.errors import ConcurrencyError, ErrorKind, from_database_error
from agri_payroll.result import Result

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[AsyncSession], Awaitable[Result[T]]]


class TransactionRunner:
    """Runs one triggering event per transaction, retrying lost races.

    Each attempt gets a fresh session. A successful Result commits; a failed
    Result rolls back. Failures of kind ``concurrency`` (including a commit
    that hits a stale version or unique key) are retried with exponential
    backoff, and a final ``ConcurrencyError`` is surfaced once attempts are
    exhausted.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        attempts: int | None = None,
        base_delay: float | None = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory or get_session_factory()
        self.attempts = max(1, attempts if attempts is not None else settings.lock_retry_attempts)
        self.base_delay = base_delay if base_delay is not None else settings.lock_retry_base_delay

    async def run(self, operation: Operation[T], name: str = "operation") -> Result[T]:
        result: Result[T] | None = None
        for attempt in range(1, self.attempts + 1):
            result = await self._attempt(operation)
            if result.error_kind != ErrorKind.CONCURRENCY:
                return result

            if attempt < self.attempts:
                delay = self.base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "Concurrency conflict in %s, retrying in %.3fs",
                    name,
                    delay,
                    extra={"attempt": attempt, "max_attempts": self.attempts},
                )
                await asyncio.sleep(delay)

        logger.error(
            "Concurrency conflict in %s persisted after %d attempts",
            name,
            self.attempts,
        )
        return Result.failure(
            ConcurrencyError(
                f"{name} failed after {self.attempts} attempts: {result.message}",
                attempts=self.attempts,
            )
        )

    async def _attempt(self, operation: Operation[T]) -> Result[T]:
        async with self.session_factory() as session:
            try:
                result = await operation(session)
                if result.is_success:
                    await session.commit()
                else:
                    await session.rollback()
                return result
            except SQLAlchemyError as exc:
                await session.rollback()
                return Result.failure(from_database_error(exc))
