#!/usr/bin/env python
"""Create the payroll tables in the configured database.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url postgresql+asyncpg://...
    python scripts/create_schema.py --drop
"""

from __future__ import annotations

import argparse
import asyncio

from agri_payroll.config import get_settings
from agri_payroll.database import get_engine
from agri_payroll.models import Base


async def create_schema(database_url: str, drop: bool) -> None:
    engine = get_engine(database_url)
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
            print("Dropped existing tables")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Created {len(Base.metadata.tables)} tables")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create payroll tables")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Async database URL (defaults to DATABASE_URL)",
    )
    parser.add_argument("--drop", action="store_true", help="Drop tables first")
    args = parser.parse_args()

    database_url = args.database_url or get_settings().database_url
    asyncio.run(create_schema(database_url, args.drop))


if __name__ == "__main__":
    main()
