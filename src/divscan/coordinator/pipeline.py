"""
Per-entity collection pipeline.

An entity's record is assembled by an ordered tuple of stages. Each stage
reads and extends a shared draft and returns either CONTINUE or a Stop
carrying the entity's terminal status:

    PrimaryDividendStage   mandatory; failure -> FAILED, no dividend -> SKIPPED
    SupplementaryStage     profile and growth fetched concurrently; never stops

Later stages depend on earlier ones only for the draft they fill in.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence, Union

from divscan.data.base import DataSource
from divscan.data.parsing import (
    build_dividend_history,
    dig,
    extract_growth_forecast,
    extract_profile,
    extract_revenue_cagr,
    is_missing,
    parse_number,
)
from divscan.logging import get_logger
from divscan.types import (
    NO_DATA,
    Entity,
    EntityRecord,
    EntityResult,
    EntityStatus,
    Success,
    TerminalFailure,
)

logger = get_logger(__name__)

FallbackPolicy = Literal["listing", "blank"]

GROWTH_SOURCE_FORECAST = "Analyst Forecast"
GROWTH_SOURCE_REVENUE_CAGR = "4yr Revenue CAGR"

# Every record carries every field, in this order.
RECORD_DEFAULTS: dict[str, Any] = {
    "name": "",
    "price": None,
    "market_cap": None,
    "sector": "",
    "industry": "",
    "dividend_yield": None,
    "annual_dividend": None,
    "ex_dividend_date": "",
    "payment_date": "",
    "growth_rate": None,
    "growth_source": "",
    "description": "",
    "dividend_history": [],
}


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class Stop:
    status: EntityStatus
    reason: str = ""


StageResult = Union[Continue, Stop]
CONTINUE = Continue()


@dataclass
class PipelineContext:
    """State shared by the stages of one entity."""

    entity: Entity
    source: DataSource
    draft: dict[str, Any] = field(default_factory=dict)


class Stage(ABC):
    """One step of the per-entity pipeline."""

    name: str = "stage"

    @abstractmethod
    async def run(self, ctx: PipelineContext) -> StageResult:
        ...


class PrimaryDividendStage(Stage):
    """Fetch and validate the dividend payload.

    An entity without a positive yield and annualized dividend is skipped;
    that is a filtering decision, not an error. So is an empty 200 answer.
    """

    name = "dividends"

    async def run(self, ctx: PipelineContext) -> StageResult:
        outcome = await ctx.source.fetch_dividends(ctx.entity.symbol)
        if isinstance(outcome, TerminalFailure) and outcome.reason == NO_DATA:
            return Stop(EntityStatus.SKIPPED, "no dividend data")
        if not isinstance(outcome, Success):
            return Stop(EntityStatus.FAILED, outcome.describe())

        data = dig(outcome.payload, "data") or {}
        raw_yield = data.get("yield")
        raw_annual = data.get("annualizedDividend")
        if is_missing(raw_yield) or is_missing(raw_annual):
            return Stop(EntityStatus.SKIPPED, "no dividend data")

        dividend_yield = parse_number(raw_yield)
        annual_dividend = parse_number(raw_annual)
        if not dividend_yield or dividend_yield <= 0 or not annual_dividend or annual_dividend <= 0:
            return Stop(EntityStatus.SKIPPED, "zero dividend")

        history = build_dividend_history(dig(data, "dividends", "rows") or [])

        ctx.draft.update(
            name=ctx.entity.name,
            price=parse_number(ctx.entity.price),
            market_cap=parse_number(ctx.entity.market_cap),
            dividend_yield=dividend_yield,
            annual_dividend=annual_dividend,
            ex_dividend_date=str(data.get("exDividendDate") or "").strip(),
            payment_date=str(data.get("dividendPaymentDate") or "").strip(),
            dividend_history=[entry.to_dict() for entry in history],
        )
        return CONTINUE


class SupplementaryStage(Stage):
    """Fill profile and growth fields. Failures leave fields to the fallback."""

    name = "supplementary"

    def __init__(self, fallback: FallbackPolicy = "listing") -> None:
        if fallback not in ("listing", "blank"):
            raise ValueError(f"Unknown fallback policy: {fallback}")
        self.fallback = fallback

    async def run(self, ctx: PipelineContext) -> StageResult:
        profile, growth = await asyncio.gather(self._profile(ctx), self._growth(ctx))
        ctx.draft.update(profile)
        ctx.draft.update(growth)
        return CONTINUE

    async def _profile(self, ctx: PipelineContext) -> dict[str, Any]:
        outcome = await ctx.source.fetch_profile(ctx.entity.symbol)
        if isinstance(outcome, Success):
            profile = extract_profile(outcome.payload)
        else:
            logger.debug("Profile unavailable", outcome=outcome.describe())
            profile = {"description": "", "sector": "", "industry": ""}

        if self.fallback == "listing":
            profile["sector"] = profile["sector"] or ctx.entity.sector
            profile["industry"] = profile["industry"] or ctx.entity.industry
        return profile

    async def _growth(self, ctx: PipelineContext) -> dict[str, Any]:
        symbol = ctx.entity.symbol

        outcome = await ctx.source.fetch_growth_forecast(symbol)
        if isinstance(outcome, Success):
            rate = extract_growth_forecast(outcome.payload)
            if rate is not None:
                return {"growth_rate": rate, "growth_source": GROWTH_SOURCE_FORECAST}

        outcome = await ctx.source.fetch_financials(symbol)
        if isinstance(outcome, Success):
            rate = extract_revenue_cagr(outcome.payload)
            if rate is not None:
                return {"growth_rate": rate, "growth_source": GROWTH_SOURCE_REVENUE_CAGR}

        return {"growth_rate": None, "growth_source": ""}


def default_stages(fallback: FallbackPolicy = "listing") -> tuple[Stage, ...]:
    return (PrimaryDividendStage(), SupplementaryStage(fallback=fallback))


class EntityPipeline:
    """Runs the stages for one entity and freezes the result."""

    def __init__(
        self,
        source: DataSource,
        stages: Sequence[Stage] | None = None,
        fallback: FallbackPolicy = "listing",
    ) -> None:
        self.source = source
        self.stages = tuple(stages) if stages is not None else default_stages(fallback)

    async def process(self, entity: Entity) -> EntityResult:
        ctx = PipelineContext(entity=entity, source=self.source)
        for stage in self.stages:
            result = await stage.run(ctx)
            if isinstance(result, Stop):
                logger.debug(
                    "Entity stopped", stage=stage.name, status=result.status.value, reason=result.reason
                )
                return EntityResult(entity.symbol, result.status, reason=result.reason)

        fields = {
            key: ctx.draft[key] if key in ctx.draft else copy.copy(default)
            for key, default in RECORD_DEFAULTS.items()
        }
        return EntityResult(
            entity.symbol,
            EntityStatus.RECORDED,
            record=EntityRecord(symbol=entity.symbol, fields=fields),
        )
