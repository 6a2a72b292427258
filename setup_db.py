#!/usr/bin/env python3
"""
Database Setup Script
Creates all necessary tables for the Device Warnings Server
"""
import asyncio
import sys

from sqlalchemy import inspect

sys.path.insert(0, '.')

from device_warnings.core.config import DATABASE_URL
from device_warnings.core.database import engine, create_db_and_tables


async def main():
    print(f"Connecting to {DATABASE_URL}")
    await create_db_and_tables()

    async with engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    await engine.dispose()

    print("Tables created or already exist:")
    for table in sorted(tables):
        print(f"  - {table}")


if __name__ == "__main__":
    asyncio.run(main())
