"""Live multi-store product search with result caching and search tracking."""

import uuid
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.config import settings
from pricehunter.core.dates import utc_now
from pricehunter.core.exceptions import InvalidInputError
from pricehunter.models.activity import SearchHistory
from pricehunter.scrapers.registry import AdapterRegistry, StoreSearchResult
from pricehunter.services.cache_service import CacheService

logger = structlog.get_logger(__name__)

MAX_QUERY_LENGTH = 200


class SearchService:
    """Searches storefronts for a query and records what users search for.

    Results come from the adapter registry's concurrent fan-out; a cached
    copy is returned when the same query and store set were searched
    recently.
    """

    def __init__(
        self,
        db: AsyncSession,
        registry: AdapterRegistry,
        cache: Optional[CacheService] = None,
    ):
        """Initialize search service.

        Args:
            db: Async database session (search history)
            registry: Adapter registry used for the live search
            cache: Result cache; searches go straight to the stores without one
        """
        self.db = db
        self.registry = registry
        self.cache = cache
        self.logger = logger.bind(service="search_service")

    async def search(
        self,
        query: str,
        stores: Optional[Iterable[str]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> StoreSearchResult:
        """Search the given stores (default DEFAULT_SEARCH_STORES).

        Args:
            query: Free-text query
            stores: Store slugs to search
            user_id: Searching user, recorded for personalization

        Returns:
            StoreSearchResult with per-store results and errors

        Raises:
            InvalidInputError: On an empty or overlong query
        """
        normalized_query = " ".join((query or "").split())
        if not normalized_query:
            raise InvalidInputError("q", "search query must not be empty")
        if len(normalized_query) > MAX_QUERY_LENGTH:
            raise InvalidInputError("q", f"search query longer than {MAX_QUERY_LENGTH} characters")

        slugs = list(dict.fromkeys(stores)) if stores else settings.get_default_search_stores()

        result = await self.cache.get_search(normalized_query, slugs) if self.cache else None
        if result is None:
            result = await self.registry.search_stores(normalized_query, slugs)
            if self.cache:
                await self.cache.set_search(result, slugs)
        else:
            self.logger.info("search_served_from_cache", query=normalized_query, stores=slugs)

        await self.record_search(normalized_query, result.total, user_id)
        return result

    async def record_search(self, query: str, results_count: int, user_id: Optional[uuid.UUID] = None) -> None:
        """Store a search for trending/personalized deals.

        Tracking is best effort; a database failure is logged and dropped.
        """
        try:
            self.db.add(SearchHistory(
                id=uuid.uuid4(),
                user_id=user_id,
                query=query.lower()[:MAX_QUERY_LENGTH],
                results_count=results_count,
                created_at=utc_now(),
            ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.warning("search_tracking_failed", query=query, error=str(e))

    async def get_popular_queries(self, limit: int = 10) -> List[str]:
        """Most frequent queries, most searched first."""
        count = func.count(SearchHistory.id)
        result = await self.db.execute(
            select(SearchHistory.query, count)
            .group_by(SearchHistory.query)
            .order_by(count.desc(), SearchHistory.query)
            .limit(limit)
        )
        return [row[0] for row in result.all()]
