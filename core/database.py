"""
Database engines and session factories (SQLAlchemy async)
"""

from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import settings


def build_session_maker(
    database_url: Optional[str] = None,
    **engine_options
) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an engine and its session factory."""
    engine = create_async_engine(database_url or settings.DATABASE_URL, echo=False, **engine_options)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )
    return engine, session_maker


# API requests
engine, async_session_maker = build_session_maker(poolclass=NullPool)
