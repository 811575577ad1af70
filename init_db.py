"""Initialize database tables"""
import asyncio
from alitools.config import get_settings
from alitools.database import engine, Base
from alitools.models import *  # noqa: F401,F403 - Import all models to register them


async def init():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Database tables created successfully ({get_settings().database_url_source}).")


if __name__ == "__main__":
    asyncio.run(init())
