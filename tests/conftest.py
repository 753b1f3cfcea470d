"""
Pytest configuration and fixtures for divscan tests.
"""

from __future__ import annotations

import os
import random
from pathlib import Path
from typing import Any, Generator
from unittest.mock import patch

import httpx
import pytest

from divscan.config import Settings, clear_settings_cache
from divscan.data.base import DataSource
from divscan.net.throttle import ThrottleController
from divscan.types import Entity, Outcome, Success, TerminalFailure


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing.

    Pacing delays are zeroed so nothing in a test waits on jitter.
    """
    env_vars = {
        "API_BASE_URL": "https://api.test.local",
        "CONCURRENCY": "2",
        "MIN_DELAY_SECONDS": "0",
        "MAX_DELAY_SECONDS": "0",
        "MAX_RETRIES": "3",
        "REQUEST_TIMEOUT_SECONDS": "5",
        "BACKOFF_BASE_SECONDS": "1.0",
        "BACKOFF_FACTOR": "2.0",
        "FAILURE_CEILING": "50",
        "CHECKPOINT_EVERY": "2",
        "CHECKPOINT_STALENESS_HOURS": "2",
        "SUPPLEMENT_FALLBACK": "listing",
        "FILTER_MISSING_GROWTH": "false",
        "TOP_N": "5",
        "DATA_DIR": "test_data",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration.

    Uses temp_dir for the data and checkpoint directories.
    """
    with patch.dict(os.environ, {"DATA_DIR": str(temp_dir / "data")}):
        clear_settings_cache()
        from divscan.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ==================== Time ====================


class FakeClock:
    """Monotonic clock whose sleep advances time instantly and records waits."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def throttle(fake_clock: FakeClock) -> ThrottleController:
    """Throttle with no jitter, a fake clock and a breaker that never trips."""
    return ThrottleController(
        min_delay=0.0,
        max_delay=0.0,
        rate_limit_cooldown=30.0,
        block_cooldown=45.0,
        failure_ceiling=100,
        circuit_breaker_cooldown=120.0,
        clock=fake_clock,
        rng=random.Random(7),
    )


# ==================== Nasdaq API stub ====================


def dividend_payload(
    dividend_yield: str = "3.00%",
    annual: str = "$1.20",
    rows: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    if rows is None:
        rows = [
            {"exOrEffDate": "03/14/2023", "amount": "$0.30"},
            {"exOrEffDate": "09/14/2023", "amount": "$0.30"},
            {"exOrEffDate": "03/14/2024", "amount": "$0.60"},
        ]
    return {
        "data": {
            "yield": dividend_yield,
            "annualizedDividend": annual,
            "exDividendDate": "03/14/2024",
            "dividendPaymentDate": "04/01/2024",
            "dividends": {"rows": rows},
        }
    }


def profile_payload(sector: str = "Utilities", industry: str = "Power", description: str = "") -> dict[str, Any]:
    return {
        "data": {
            "CompanyDescription": {"value": description},
            "Sector": {"value": sector},
            "Industry": {"value": industry},
        }
    }


def peg_payload(growth: float | None) -> dict[str, Any]:
    chart = [{"z": "PE", "y": 18.0}]
    if growth is not None:
        chart.append({"z": "Growth", "y": growth})
    return {"data": {"gr": {"peGrowthChart": chart}}}


def financials_payload(latest: str, oldest: str) -> dict[str, Any]:
    return {
        "data": {
            "incomeStatementTable": {
                "rows": [
                    {"value1": "Total Revenue", "value2": latest, "value3": "", "value4": "", "value5": oldest},
                ]
            }
        }
    }


ROUTES = {
    ("quote", "dividends"): "dividends",
    ("company", "company-profile"): "profile",
    ("analyst", "peg-ratio"): "peg",
    ("company", "financials"): "financials",
}


class NasdaqStub:
    """Deterministic in-memory Nasdaq API served through httpx.MockTransport.

    Each endpoint of a stock holds either a JSON payload (served with 200)
    or an int status code. Endpoints with nothing configured answer 200
    with ``{"data": null}``, as the real API does for unknown symbols.
    ``script`` queues status codes served before the configured response.
    """

    def __init__(self) -> None:
        self.listing: list[dict[str, Any]] = []
        self.endpoints: dict[tuple[str, str], Any] = {}
        self.script: dict[str, list[int]] = {}
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []

    def add_stock(
        self,
        symbol: str,
        dividends: Any = None,
        profile: Any = None,
        peg: Any = None,
        financials: Any = None,
        sector: str = "Utilities",
        industry: str = "Electric Utilities",
    ) -> None:
        self.listing.append(
            {
                "symbol": symbol,
                "name": f"{symbol} Corp",
                "lastsale": "$50.00",
                "marketCap": "1,000,000,000",
                "sector": sector,
                "industry": industry,
            }
        )
        for kind, value in (
            ("dividends", dividends),
            ("profile", profile),
            ("peg", peg),
            ("financials", financials),
        ):
            if value is not None:
                self.endpoints[(symbol, kind)] = value

    def calls_for(self, symbol: str) -> list[str]:
        return [path for path in self.calls if f"/{symbol}/" in path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        self.requests.append(request)

        queued = self.script.get(path)
        if queued:
            return httpx.Response(queued.pop(0), json={})

        if path == "/api/screener/stocks":
            return httpx.Response(200, json={"data": {"table": {"rows": self.listing}}})

        parts = path.strip("/").split("/")
        if len(parts) != 4 or parts[0] != "api":
            return httpx.Response(404, json={})
        kind = ROUTES.get((parts[1], parts[3]))
        if kind is None:
            return httpx.Response(404, json={})

        value = self.endpoints.get((parts[2], kind))
        if value is None:
            return httpx.Response(200, json={"data": None})
        if isinstance(value, int):
            return httpx.Response(value, json={})
        return httpx.Response(200, json=value)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def nasdaq_stub() -> NasdaqStub:
    return NasdaqStub()


@pytest.fixture
def payloads() -> Any:
    """Payload builders for the Nasdaq endpoints."""

    class Payloads:
        dividends = staticmethod(dividend_payload)
        profile = staticmethod(profile_payload)
        peg = staticmethod(peg_payload)
        financials = staticmethod(financials_payload)

    return Payloads


# ==================== In-memory data source ====================


class FakeSource(DataSource):
    """DataSource returning canned outcomes, for pipeline and orchestrator tests.

    Unconfigured calls return TerminalFailure("no_data"). Symbols in
    ``explode`` raise ``explode_with`` from fetch_dividends.
    """

    def __init__(self) -> None:
        self.entities: list[Entity] = []
        self.outcomes: dict[tuple[str, str], Outcome] = {}
        self.calls: list[tuple[str, str]] = []
        self.explode: set[str] = set()
        self.explode_with: type[BaseException] = RuntimeError
        self.closed = False

    def add(
        self,
        symbol: str,
        dividends: Any = None,
        profile: Any = None,
        peg: Any = None,
        financials: Any = None,
        sector: str = "Utilities",
        industry: str = "Electric Utilities",
    ) -> Entity:
        entity = Entity(
            symbol=symbol,
            name=f"{symbol} Corp",
            sector=sector,
            industry=industry,
            price="$50.00",
            market_cap="1,000,000,000",
        )
        self.entities.append(entity)
        for kind, value in (
            ("dividends", dividends),
            ("profile", profile),
            ("peg", peg),
            ("financials", financials),
        ):
            if value is None:
                continue
            self.outcomes[(symbol, kind)] = value if hasattr(value, "kind") else Success(payload=value)
        return entity

    @property
    def source_name(self) -> str:
        return "fake"

    async def list_entities(self) -> list[Entity]:
        return list(self.entities)

    async def _fetch(self, symbol: str, kind: str) -> Outcome:
        self.calls.append((symbol, kind))
        if kind == "dividends" and symbol in self.explode:
            raise self.explode_with(f"boom: {symbol}")
        return self.outcomes.get((symbol, kind), TerminalFailure(reason="no_data"))

    async def fetch_dividends(self, symbol: str) -> Outcome:
        return await self._fetch(symbol, "dividends")

    async def fetch_profile(self, symbol: str) -> Outcome:
        return await self._fetch(symbol, "profile")

    async def fetch_growth_forecast(self, symbol: str) -> Outcome:
        return await self._fetch(symbol, "peg")

    async def fetch_financials(self, symbol: str) -> Outcome:
        return await self._fetch(symbol, "financials")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()
