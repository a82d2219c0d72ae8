"""Read-only worker lookups used by the payroll services."""

from __future__ import annotations

from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agri_payroll.errors import NotFoundError
from agri_payroll.models import Worker


class WorkerDirectory(Protocol):
    """Worker id -> nationality/name lookup."""

    async def nationalities(self, worker_ids: Iterable[UUID]) -> dict[UUID, str | None]:
        ...


class SqlWorkerDirectory:
    """Worker directory backed by the ``workers`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, worker_id: UUID) -> Worker:
        worker = await self.session.get(Worker, worker_id)
        if worker is None:
            raise NotFoundError(f"Worker {worker_id} not found", worker_id=worker_id)
        return worker

    async def nationalities(self, worker_ids: Iterable[UUID]) -> dict[UUID, str | None]:
        """Nationality per worker id.

        Raises:
            NotFoundError: If any worker id is unknown
        """
        wanted = set(worker_ids)
        if not wanted:
            return {}
        result = await self.session.execute(
            select(Worker.worker_id, Worker.nationality).where(Worker.worker_id.in_(wanted))
        )
        found = {row.worker_id: row.nationality for row in result}
        missing = wanted - found.keys()
        if missing:
            raise NotFoundError(
                f"{len(missing)} worker(s) not found",
                worker_ids=sorted(str(m) for m in missing),
            )
        return found
