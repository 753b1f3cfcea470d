"""
Nasdaq public API client.

Endpoints used:
- Stock screener (bulk listing of every listed equity)
- Quote dividends (yield, annualized dividend, payment history)
- Company profile (description, sector, industry)
- Analyst PEG ratio (forward earnings growth forecast)
- Company financials (annual income statement)

All calls go through the RequestExecutor, so pacing, identity rotation,
retry and classification are handled there. This module only knows URLs
and response envelopes.
"""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import quote

import httpx

from divscan.config import Settings
from divscan.data.base import DataSource
from divscan.data.parsing import dig
from divscan.exceptions import ListingError
from divscan.logging import get_logger
from divscan.net.executor import RequestExecutor, RequestSpec, SleepFn
from divscan.net.throttle import ThrottleController
from divscan.types import NO_DATA, Entity, Outcome, Success, TerminalFailure

logger = get_logger(__name__)

SCREENER_PATH = "/api/screener/stocks"
DIVIDENDS_PATH = "/api/quote/{symbol}/dividends"
PROFILE_PATH = "/api/company/{symbol}/company-profile"
PEG_RATIO_PATH = "/api/analyst/{symbol}/peg-ratio"
FINANCIALS_PATH = "/api/company/{symbol}/financials"


def _path(template: str, symbol: str) -> str:
    return template.format(symbol=quote(symbol, safe=""))


class NasdaqClient(DataSource):
    """Client for the Nasdaq JSON API."""

    def __init__(self, executor: RequestExecutor, listing_limit: int = 10000) -> None:
        """Initialize Nasdaq client.

        Args:
            executor: Executor that owns the HTTP client and retry policy.
            listing_limit: Maximum rows requested from the screener.
        """
        self.executor = executor
        self.listing_limit = listing_limit

    @classmethod
    def create(
        cls,
        settings: Settings,
        throttle: ThrottleController,
        sleep: SleepFn = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NasdaqClient:
        """Build a client, its HTTP session and executor from settings."""
        client = httpx.AsyncClient(
            base_url=settings.API_BASE_URL,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            follow_redirects=True,
            transport=transport,
        )
        executor = RequestExecutor.from_settings(settings, client, throttle, sleep=sleep)
        return cls(executor, listing_limit=settings.LISTING_LIMIT)

    @property
    def source_name(self) -> str:
        return "nasdaq"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.executor.client.aclose()

    async def _get(self, path: str, label: str, **params: Any) -> Outcome:
        outcome = await self.executor.execute(RequestSpec(url=path, params=params, label=label))
        if not isinstance(outcome, Success):
            return outcome
        # The API answers unknown symbols with HTTP 200 and "data": null.
        if dig(outcome.payload, "data") is None:
            return TerminalFailure(reason=NO_DATA, status_code=outcome.status_code)
        return outcome

    # ==================== Listing ====================

    async def list_entities(self) -> list[Entity]:
        """Fetch every listed stock.

        Raises:
            ListingError: If the listing cannot be fetched or is empty.
        """
        outcome = await self._get(
            SCREENER_PATH, "listing", tableonly="true", limit=self.listing_limit
        )
        if not isinstance(outcome, Success):
            raise ListingError(
                "Failed to fetch entity listing",
                context={"source": self.source_name, "outcome": outcome.describe()},
            )

        rows = dig(outcome.payload, "data", "table", "rows")
        if rows is None:
            rows = dig(outcome.payload, "data", "rows")
        if not isinstance(rows, list) or not rows:
            raise ListingError(
                "Entity listing is empty",
                context={"source": self.source_name},
            )

        entities: list[Entity] = []
        seen: set[str] = set()
        for row in rows:
            if not isinstance(row, dict):
                continue
            entity = Entity.from_listing_row(row)
            if entity is None or entity.symbol in seen:
                continue
            seen.add(entity.symbol)
            entities.append(entity)

        logger.info("Fetched entity listing", count=len(entities), rows=len(rows))
        return entities

    # ==================== Per-entity calls ====================

    async def fetch_dividends(self, symbol: str) -> Outcome:
        return await self._get(
            _path(DIVIDENDS_PATH, symbol), f"dividends:{symbol}", assetclass="stocks"
        )

    async def fetch_profile(self, symbol: str) -> Outcome:
        return await self._get(_path(PROFILE_PATH, symbol), f"profile:{symbol}")

    async def fetch_growth_forecast(self, symbol: str) -> Outcome:
        return await self._get(_path(PEG_RATIO_PATH, symbol), f"peg:{symbol}")

    async def fetch_financials(self, symbol: str) -> Outcome:
        return await self._get(
            _path(FINANCIALS_PATH, symbol), f"financials:{symbol}", frequency=1
        )
