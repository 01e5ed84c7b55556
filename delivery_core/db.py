# Database setup with SQLAlchemy async engine and session factory.
# Uses declarative_base for ORM models and get_session as a FastAPI dependency.
# Provides an AsyncSession connected to the configured DATABASE_URL.


from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from delivery_core.config import settings

Base = declarative_base()

engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
