from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.platform.config import get_settings
from app.platform.db.base import Base

settings = get_settings()

engine_options = {"echo": False, "future": True, "pool_pre_ping": True}
if settings.DATABASE_URL.startswith("sqlite"):
    # aiosqlite connections are bound to the loop that opened them
    engine_options["poolclass"] = NullPool
else:
    engine_options.update(
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_options)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def init_models() -> None:
    """Create missing tables. Used at startup when DATABASE_AUTO_CREATE is on."""
    from app.features.diagnostic.models.analysis import Analysis  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
