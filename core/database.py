# core/database.py
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from settings import DEBUG, GEO_DATABASE_URL


def make_engine(url: str = GEO_DATABASE_URL) -> AsyncEngine:
    return create_async_engine(url, echo=DEBUG)


engine = make_engine()


class Base(DeclarativeBase):
    pass


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
