"""Database utility functions."""

from pricehunter.db.session import engine
from pricehunter.models.base import Base


async def create_tables() -> None:
    """Create all tables registered on Base.metadata (idempotent)."""
    # Import all models so they register with Base.metadata
    import pricehunter.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
