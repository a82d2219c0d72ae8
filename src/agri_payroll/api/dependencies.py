"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agri_payroll.database import get_session_factory
from agri_payroll.services.context import ServiceContext
from agri_payroll.services.locking_service import TransactionRunner


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory dependency (overridden in tests)."""
    return get_session_factory()


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_transaction_runner(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_session_factory)],
) -> TransactionRunner:
    """Runner giving each lifecycle event its own retried transaction."""
    return TransactionRunner(factory)


async def get_service_context(
    x_actor: Annotated[str | None, Header()] = None,
    x_request_id: Annotated[str | None, Header()] = None,
) -> ServiceContext:
    """Build the caller context from request headers."""
    return ServiceContext(
        actor_name=(x_actor or "").strip() or "anonymous",
        request_id=x_request_id or uuid4().hex,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Runner = Annotated[TransactionRunner, Depends(get_transaction_runner)]
Context = Annotated[ServiceContext, Depends(get_service_context)]
