"""FastAPI dependency injection providers."""

import uuid
from typing import AsyncGenerator, Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.db.session import async_session_factory
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.services.notification_service import NotificationDispatcher


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is committed on success or rolled back on error, and
    always closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_registry(request: Request) -> AdapterRegistry:
    """The adapter registry built at startup."""
    return request.app.state.registry


def get_dispatcher(request: Request) -> Optional[NotificationDispatcher]:
    return getattr(request.app.state, "dispatcher", None)


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="Authenticated user id, set by the auth gateway"),
) -> uuid.UUID:
    """Caller identity forwarded by the authentication layer.

    Raises 401 if the header is missing or not a UUID.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user id")


async def get_optional_user_id(
    x_user_id: Optional[str] = Header(None),
) -> Optional[uuid.UUID]:
    """Like get_current_user_id but returns None instead of raising 401."""
    if not x_user_id:
        return None
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        return None

