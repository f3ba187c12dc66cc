# storefront/db/database.py
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool

from storefront.config import DATABASE_URL, DB_ECHO

logger = logging.getLogger(__name__)

# aiosqlite connections must not outlive the event loop that opened them
engine_options = {"echo": DB_ECHO}
if DATABASE_URL.startswith("sqlite"):
    engine_options["poolclass"] = NullPool

engine = create_async_engine(DATABASE_URL, **engine_options)

SessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db():
    async with SessionLocal() as session:
        yield session


async def table_exists(table_name: str) -> bool:
    """Probe a table with a throwaway query on its own connection."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text(f'SELECT 1 FROM "{table_name}" LIMIT 1'))
        return True
    except Exception as e:
        logger.warning("Table probe failed for %s, related checks will be skipped: %s", table_name, e)
        return False
