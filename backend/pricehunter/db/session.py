"""Async engine and session factory shared by the API and scheduled jobs."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pricehunter.config import settings


def build_engine(url: str = settings.DATABASE_URL):
    """Create the async engine; pool options only apply to server databases."""
    options: dict = {"echo": settings.DEBUG and settings.ENVIRONMENT != "test"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **options)


engine = build_engine()

# Scheduled jobs open one session per run from this factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
