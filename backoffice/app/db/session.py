"""
Database engine and sessions.

PostgreSQL (asyncpg) in production. A SQLite URL is accepted for local runs
and tests; foreign keys are then switched on per connection so location
deletes are blocked the same way Postgres blocks them.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backoffice.app.core.config import settings


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def enable_sqlite_foreign_keys(target: AsyncEngine) -> None:
    @event.listens_for(target.sync_engine, "connect")
    def _foreign_keys_on(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: str) -> AsyncEngine:
    if is_sqlite(url):
        sqlite_engine = create_async_engine(url, echo=settings.db_echo)
        enable_sqlite_foreign_keys(sqlite_engine)
        return sqlite_engine

    return create_async_engine(
        url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


engine = build_engine(settings.database_url)

# Objects stay readable after commit; services refresh explicitly
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """One session per request."""
    async with AsyncSessionLocal() as session:
        yield session
