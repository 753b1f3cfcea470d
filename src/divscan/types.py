"""
Core types for divscan.

This module defines the fundamental data structures used throughout the system:
- Entity: an immutable listing row, keyed by symbol
- EntityRecord / DividendHistoryEntry: the validated per-entity result
- Outcome dataclasses: the tagged result of one request execution
- RequestStats / RunTallies: explicit counters that survive a resume
- CheckpointState: persisted progress
- Statistics / CollectionReport: the final artifact
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Union

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


# ==================== Entities and records ====================


@dataclass(frozen=True)
class Entity:
    """One unit of work: a listed symbol plus its static seed attributes."""

    symbol: str
    name: str = ""
    sector: str = ""
    industry: str = ""
    price: str = ""
    market_cap: str = ""

    @classmethod
    def from_listing_row(cls, row: Mapping[str, Any]) -> Entity | None:
        """Build an entity from a screener row, or None if it has no symbol."""
        symbol = str(row.get("symbol") or "").strip()
        if not symbol:
            return None
        return cls(
            symbol=symbol,
            name=str(row.get("name") or "").strip(),
            sector=str(row.get("sector") or "").strip(),
            industry=str(row.get("industry") or "").strip(),
            price=str(row.get("lastsale") or "").strip(),
            market_cap=str(row.get("marketCap") or "").strip(),
        )


@dataclass(frozen=True)
class DividendHistoryEntry:
    """Total cash dividend paid in one period (a calendar year)."""

    period: str
    amount: float

    def to_dict(self) -> dict[str, Any]:
        return {"period": self.period, "amount": self.amount}


@dataclass(frozen=True)
class EntityRecord:
    """Validated, assembled result for one entity.

    Field values are JSON-native so a record survives a checkpoint round
    trip unchanged. The mapping is read-only once the record exists.
    """

    symbol: str
    fields: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {"symbol": self.symbol, **self.fields}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EntityRecord:
        fields = {k: v for k, v in data.items() if k != "symbol"}
        return cls(symbol=str(data["symbol"]), fields=fields)


class EntityStatus(str, Enum):
    """Per-entity state machine: PENDING -> IN_FLIGHT -> terminal state."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RECORDED = "recorded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class EntityResult:
    """What one entity's pipeline produced."""

    symbol: str
    status: EntityStatus
    record: EntityRecord | None = None
    reason: str = ""


# ==================== Request outcomes ====================


class OutcomeKind(str, Enum):
    """Classification of one request execution."""

    SUCCESS = "success"
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    BLOCKED = "blocked"
    TERMINAL = "terminal"
    EXHAUSTED = "exhausted"


_RETRYABLE_KINDS = frozenset(
    {OutcomeKind.TRANSIENT, OutcomeKind.RATE_LIMITED, OutcomeKind.BLOCKED}
)


class _OutcomeMixin:
    kind: ClassVar[OutcomeKind]

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE_KINDS

    def describe(self) -> str:
        status = getattr(self, "status_code", None)
        return f"{self.kind.value}({status})" if status else self.kind.value


@dataclass(frozen=True)
class Success(_OutcomeMixin):
    payload: Any
    status_code: int = 200
    kind: ClassVar[OutcomeKind] = OutcomeKind.SUCCESS


@dataclass(frozen=True)
class TransientFailure(_OutcomeMixin):
    """Timeout, 5xx, dropped connection or unreadable body."""

    reason: str
    status_code: int | None = None
    kind: ClassVar[OutcomeKind] = OutcomeKind.TRANSIENT


@dataclass(frozen=True)
class RateLimited(_OutcomeMixin):
    status_code: int = 429
    kind: ClassVar[OutcomeKind] = OutcomeKind.RATE_LIMITED


@dataclass(frozen=True)
class Blocked(_OutcomeMixin):
    status_code: int = 403
    kind: ClassVar[OutcomeKind] = OutcomeKind.BLOCKED


# Reason given when the API answers 200 with no payload for a symbol.
NO_DATA = "no_data"


@dataclass(frozen=True)
class TerminalFailure(_OutcomeMixin):
    """Non-retryable response (e.g. 404)."""

    reason: str
    status_code: int | None = None
    kind: ClassVar[OutcomeKind] = OutcomeKind.TERMINAL


@dataclass(frozen=True)
class Exhausted(_OutcomeMixin):
    """The retry budget ran out; ``last`` is the final attempt's outcome."""

    last: Outcome
    attempts: int
    kind: ClassVar[OutcomeKind] = OutcomeKind.EXHAUSTED

    def describe(self) -> str:
        return f"exhausted after {self.attempts} attempts: {self.last.describe()}"


Outcome = Union[Success, TransientFailure, RateLimited, Blocked, TerminalFailure, Exhausted]


# ==================== Counters ====================


@dataclass
class RequestStats:
    """Request tallies across every attempt of a run (resumes included)."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    rate_limited: int = 0
    blocked: int = 0
    transient: int = 0
    terminal: int = 0
    cooldowns_scheduled: int = 0
    circuit_breaks: int = 0

    def record(self, outcome: Outcome) -> None:
        """Count one attempt."""
        self.total += 1
        if outcome.ok:
            self.succeeded += 1
            return
        self.failed += 1
        if outcome.kind is OutcomeKind.RATE_LIMITED:
            self.rate_limited += 1
        elif outcome.kind is OutcomeKind.BLOCKED:
            self.blocked += 1
        elif outcome.kind is OutcomeKind.TRANSIENT:
            self.transient += 1
        elif outcome.kind is OutcomeKind.TERMINAL:
            self.terminal += 1

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.succeeded / self.total

    def merge(self, other: RequestStats) -> None:
        for name, value in asdict(other).items():
            setattr(self, name, getattr(self, name) + value)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = asdict(self)
        data["success_rate"] = round(self.success_rate, 4)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RequestStats:
        known = cls.__dataclass_fields__
        return cls(**{k: int(v) for k, v in data.items() if k in known})


@dataclass
class RunTallies:
    """Cumulative per-entity counts, persisted so resumed runs report totals."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    requests: RequestStats = field(default_factory=RequestStats)
    # Seconds spent collecting, summed over every segment of a resumed run.
    active_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "requests": self.requests.to_dict(),
            "active_seconds": self.active_seconds,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RunTallies:
        return cls(
            processed=int(data.get("processed", 0)),
            skipped=int(data.get("skipped", 0)),
            failed=int(data.get("failed", 0)),
            requests=RequestStats.from_dict(data.get("requests") or {}),
            active_seconds=float(data.get("active_seconds", 0.0)),
        )


# ==================== Checkpoint ====================


@dataclass
class CheckpointState:
    """Progress of a collection run.

    Invariant: every record's symbol is in ``processed``. A processed
    symbol may have no record (it was skipped or failed).
    """

    processed: set[str] = field(default_factory=set)
    records: list[EntityRecord] = field(default_factory=list)
    tallies: RunTallies = field(default_factory=RunTallies)
    started_at: datetime = field(default_factory=utc_now)
    saved_at: datetime | None = None

    @classmethod
    def empty(cls) -> CheckpointState:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.processed


# ==================== Report ====================


@dataclass(frozen=True)
class Statistics:
    """Grouped statistics over the collected records."""

    total_records: int
    average_yield: float | None
    yield_distribution: dict[str, int]
    by_sector: dict[str, dict[str, Any]]
    top_by_yield: list[dict[str, Any]]
    with_growth_data: int
    without_growth_data: int
    growth_sources: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReportMetadata:
    """Run-level facts about a collection."""

    run_id: str
    started_at: datetime
    completed_at: datetime
    total_scanned: int
    processed: int
    recorded: int
    skipped: int
    failed: int
    resumed_entities: int
    requests: RequestStats
    active_seconds: float = 0.0

    @property
    def duration_minutes(self) -> float:
        """Time spent collecting; downtime between resumed segments is excluded."""
        return round(self.active_seconds / 60.0, 2)

    @property
    def elapsed_minutes(self) -> float:
        """Wall-clock span from the first segment's start to completion."""
        return round((self.completed_at - self.started_at).total_seconds() / 60.0, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_minutes": self.duration_minutes,
            "elapsed_minutes": self.elapsed_minutes,
            "total_scanned": self.total_scanned,
            "processed": self.processed,
            "recorded": self.recorded,
            "skipped": self.skipped,
            "failed": self.failed,
            "resumed_entities": self.resumed_entities,
            "requests": self.requests.to_dict(),
        }


@dataclass(frozen=True)
class CollectionReport:
    """The finished snapshot of one run."""

    metadata: ReportMetadata
    statistics: Statistics
    records: tuple[EntityRecord, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "last_updated": self.metadata.completed_at.isoformat(),
            "count": len(self.records),
            "metadata": self.metadata.to_dict(),
            "statistics": self.statistics.to_dict(),
            "stocks": [record.to_dict() for record in self.records],
        }
