"""
USDA FoodData Central API client.

Handles foods/search requests with client-side rate limiting. No retries:
a failed search is reported to the caller as a transport error.
"""

import asyncio
import time
from typing import Optional, Sequence

import aiohttp
import structlog
from pydantic import ValidationError as PydanticValidationError

from nutrivision.config import USDAConfig
from nutrivision.domain.nutrition.usda_mapper import USDAMapper
from nutrivision.domain.nutrition.usda_models import USDASearchResult
from nutrivision.domain.shared.errors import NutrientResolutionError

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Token bucket rate limiter.

    Keeps us under the USDA API hourly quota.
    """

    def __init__(
        self,
        requests_per_hour: int = 1000,
        burst_size: int = 10,
        max_wait_seconds: float = 60.0,
    ) -> None:
        """Initialize rate limiter.

        Args:
            requests_per_hour: Max requests per hour
            burst_size: Max burst requests
            max_wait_seconds: Longest acceptable wait for a token
        """
        self.requests_per_hour = requests_per_hour
        self.burst_size = burst_size
        self.max_wait_seconds = max_wait_seconds
        self.tokens = float(burst_size)
        self.last_update = time.monotonic()
        self.lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take a token, waiting for a refill if needed.

        Raises:
            NutrientResolutionError: transport, if the wait would exceed
                max_wait_seconds
        """
        async with self.lock:
            now = time.monotonic()
            elapsed = now - self.last_update

            refill_rate = self.requests_per_hour / 3600.0
            self.tokens = min(self.burst_size, self.tokens + elapsed * refill_rate)
            self.last_update = now

            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return

            wait_time = (1.0 - self.tokens) / refill_rate
            if wait_time > self.max_wait_seconds:
                raise NutrientResolutionError.transport(
                    f"USDA rate limit exceeded, wait time {wait_time:.0f}s"
                )

            await asyncio.sleep(wait_time)
            self.tokens = 0.0
            self.last_update = time.monotonic()


class USDAApiClient:
    """USDA FoodData Central API client."""

    def __init__(
        self,
        config: USDAConfig,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(
            requests_per_hour=config.requests_per_hour
        )
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "USDAApiClient":
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def search_foods(
        self,
        query: str,
        data_types: Sequence[str],
        page_size: int,
    ) -> USDASearchResult:
        """Search foods by free text.

        Args:
            query: Search term (e.g., "burrito")
            data_types: Dataset categories, e.g. ("Survey (FNDDS)", "Foundation")
            page_size: Foods per page

        Returns:
            Search result, possibly with zero foods

        Raises:
            NutrientResolutionError: transport on network errors, timeouts
                and error statuses

        Example:
            >>> async def test():
            ...     async with USDAApiClient(USDAConfig(api_key="test")) as client:
            ...         return await client.search_foods(
            ...             "burrito", ["Survey (FNDDS)"], page_size=25
            ...         )
        """
        if not self._session:
            raise NutrientResolutionError.transport("Client not initialized, use async with")

        await self.rate_limiter.acquire()

        params: dict[str, str | int] = {
            "query": query,
            "dataType": ",".join(data_types),
            "pageSize": page_size,
            "api_key": self.config.api_key,
        }
        url = f"{self.config.base_url}/foods/search"

        try:
            async with self._session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            ) as response:
                if response.status == 429:
                    logger.warning("USDA API rate limit", query=query)
                    raise NutrientResolutionError.transport("USDA API rate limit")

                if response.status >= 400:
                    raise NutrientResolutionError.transport(
                        f"USDA API error: {response.status}"
                    )

                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise NutrientResolutionError.transport(
                        f"USDA API returned invalid JSON: {e}"
                    ) from e

        except asyncio.TimeoutError as e:
            raise NutrientResolutionError.transport("USDA API timeout") from e
        except aiohttp.ClientError as e:
            raise NutrientResolutionError.transport(f"USDA API client error: {e}") from e

        if not isinstance(data, dict):
            raise NutrientResolutionError.transport("USDA API returned unexpected body")

        try:
            result = USDAMapper.parse_search_response(data)
        except (PydanticValidationError, AttributeError, TypeError) as e:
            raise NutrientResolutionError.transport(
                f"USDA API returned malformed foods: {e}"
            ) from e
        logger.debug("USDA search", query=query, foods=len(result.foods))
        return result
