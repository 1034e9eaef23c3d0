import logging
from typing import Any, Dict

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from fastapi import HTTPException
from volunteer_board.core import tracing as logger
from volunteer_board.core.config import settings

# Configure logging for SQLAlchemy (ORM logs only)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

# Declarative base class
Base = declarative_base()


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine with driver-appropriate pool settings"""
    engine_kwargs: Dict[str, Any] = {"echo": False}

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url:
            # Every session must see the same in-memory database
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=300,
            connect_args={
                "server_settings": {
                    "application_name": "volunteer_board"
                },
                "command_timeout": 5,
            }
        )

    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )


# SQLAlchemy Engine
engine = build_engine(settings.DATABASE_URL)

# Async session factory
AsyncSessionLocal = build_session_factory(engine)


async def init_db(bind: AsyncEngine = None):
    """Initialize database tables with trace-aware logging."""
    # Models must be registered on Base.metadata before create_all
    import volunteer_board.db.models  # noqa: F401

    bind = bind or engine
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e), type=type(e).__name__)
        raise


async def get_db():
    """Async session dependency with trace-aware error logging."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            if isinstance(e, HTTPException):
                logger.error(
                    "Database session error",
                    error=e.detail or str(e),
                    type=type(e).__name__,
                    status_code=e.status_code
                )
            else:
                logger.error(
                    "Database session error",
                    error=str(e),
                    type=type(e).__name__
                )
            await session.rollback()
            raise
