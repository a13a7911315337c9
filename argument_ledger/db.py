import json
from pathlib import Path
import asyncpg
from argument_ledger.config import DATABASE_URL, STORE_COMMAND_TIMEOUT

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_pool: asyncpg.Pool | None = None


async def _init_connection(conn: asyncpg.Connection):
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            DATABASE_URL,
            min_size=2,
            max_size=10,
            command_timeout=STORE_COMMAND_TIMEOUT,
            init=_init_connection,
        )
    return _pool


async def close_pool():
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool):
    """Create tables and indexes if they are missing. Safe to run repeatedly."""
    await pool.execute(SCHEMA_PATH.read_text())
