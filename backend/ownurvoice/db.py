from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from ownurvoice.config import ASYNC_DATABASE_URL


class Base(DeclarativeBase):
    pass


def make_engine(url: str = ASYNC_DATABASE_URL):
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


engine = make_engine()
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_tables(bind=None) -> None:
    """Create every mapped table (SQLite demo / tests; production uses Alembic)."""
    import ownurvoice.models  # noqa: F401  registers the mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
