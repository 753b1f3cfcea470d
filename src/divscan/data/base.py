"""
Base class for data sources.

A data source exposes one bulk listing call and several independent
per-entity calls. Per-entity calls return an Outcome rather than raising,
so the pipeline can decide what a failure means for each field. Only the
listing call raises (ListingError), because without it a run has nothing
to enumerate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from divscan.types import Entity, Outcome


class DataSource(ABC):
    """Abstract base class for entity data sources."""

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Name of this data source."""
        ...

    @abstractmethod
    async def list_entities(self) -> list[Entity]:
        """Return the full entity universe, in listing order."""
        ...

    @abstractmethod
    async def fetch_dividends(self, symbol: str) -> Outcome:
        """Primary metric payload (dividend yield, history)."""
        ...

    @abstractmethod
    async def fetch_profile(self, symbol: str) -> Outcome:
        """Supplementary company profile payload."""
        ...

    @abstractmethod
    async def fetch_growth_forecast(self, symbol: str) -> Outcome:
        """Supplementary analyst growth payload."""
        ...

    @abstractmethod
    async def fetch_financials(self, symbol: str) -> Outcome:
        """Supplementary annual financials payload."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...
