#!/usr/bin/env python3
"""
Create (or drop) the PostgreSQL database used by the database-backed tests.

The server and credentials come from DATABASE_URL; the test database is
created next to the main one. Export the printed TEST_DATABASE_URL before
running pytest to enable the tests in tests/integration that need it.
"""

import asyncio
import sys

import asyncpg
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

import agenda.models  # noqa: F401
from agenda.core.config import settings
from agenda.core.database import Base

SERVER_URL = make_url(settings.DATABASE_URL)
TEST_DB_NAME = f"{SERVER_URL.database}_test"
TEST_DB_URL = SERVER_URL.set(database=TEST_DB_NAME)


async def _connect_to_server():
    return await asyncpg.connect(
        host=SERVER_URL.host,
        port=SERVER_URL.port or 5432,
        user=SERVER_URL.username,
        password=SERVER_URL.password,
        database=SERVER_URL.database,
    )


async def setup_test_database() -> bool:
    print(f"Setting up test database: {TEST_DB_NAME}")

    try:
        conn = await _connect_to_server()
        await conn.execute(f'DROP DATABASE IF EXISTS "{TEST_DB_NAME}"')
        await conn.execute(f'CREATE DATABASE "{TEST_DB_NAME}"')
        await conn.close()

        engine = create_async_engine(TEST_DB_URL, echo=False)
        async with engine.begin() as db_conn:
            await db_conn.run_sync(Base.metadata.create_all)
        await engine.dispose()
    except (OSError, asyncpg.PostgresError) as e:
        print(f"Error setting up test database: {e}")
        print(f"Make sure PostgreSQL is reachable at {SERVER_URL.host}:{SERVER_URL.port or 5432}")
        return False

    print("Test database ready. Run the tests with:")
    print(f"  TEST_DATABASE_URL={TEST_DB_URL.render_as_string(hide_password=False)} pytest")
    return True


async def cleanup_test_database() -> bool:
    print(f"Dropping test database: {TEST_DB_NAME}")

    try:
        conn = await _connect_to_server()
        await conn.execute(f'DROP DATABASE IF EXISTS "{TEST_DB_NAME}"')
        await conn.close()
    except (OSError, asyncpg.PostgresError) as e:
        print(f"Error dropping test database: {e}")
        return False

    return True


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "cleanup":
        ok = asyncio.run(cleanup_test_database())
    else:
        ok = asyncio.run(setup_test_database())
    sys.exit(0 if ok else 1)
