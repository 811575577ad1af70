"""
Database configuration and session management
"""
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from alitools.config import get_settings

settings = get_settings()

# asyncpg rejects libpq-only query parameters
_LIBPQ_ONLY_PARAMS = ("sslmode", "channel_binding")


def _get_async_url(url: str) -> str:
    """Convert database URL to async variant"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql+asyncpg://"):
        parsed = make_url(url).difference_update_query(_LIBPQ_ONLY_PARAMS)
        url = parsed.render_as_string(hide_password=False)
    return url


# Create async engine
database_url = _get_async_url(settings.database_url)
is_sqlite = database_url.startswith("sqlite")

engine_kwargs = {
    "echo": settings.DEBUG,
    "future": True,
}

# SQLite doesn't support pool_size
if not is_sqlite:
    engine_kwargs["pool_size"] = 10
    engine_kwargs["max_overflow"] = 10
    engine_kwargs["pool_pre_ping"] = True
    if settings.use_ssl:
        engine_kwargs["connect_args"] = {"ssl": "require"}

engine = create_async_engine(database_url, **engine_kwargs)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory():
    """Dependency for work that opens its own sessions (background imports)"""
    return AsyncSessionLocal
