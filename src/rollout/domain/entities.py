"""Domain model entities for rollout.

These are pure data classes representing business concepts, independent of
database schema. The storage layer converts its rows into these entities, so
the lifecycle and reconciliation rules never see ORM objects or raw JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class CityStatus(str, Enum):
    """Rollout stage of a city, in lifecycle order."""

    PLANNING = "PLANNING"
    EXPANSION = "EXPANSION"
    CONSOLIDATED = "CONSOLIDATED"

    @property
    def rank(self) -> int:
        """Position in the lifecycle (PLANNING is 0)."""
        return _STATUS_ORDER.index(self)

    def next(self) -> Optional["CityStatus"]:
        """Return the status immediately after this one, or None if terminal."""
        index = self.rank + 1
        if index >= len(_STATUS_ORDER):
            return None
        return _STATUS_ORDER[index]


_STATUS_ORDER = (CityStatus.PLANNING, CityStatus.EXPANSION, CityStatus.CONSOLIDATED)


class TransactionType(str, Enum):
    """Direction of a feed transaction."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class Provenance(str, Enum):
    """Where a stored monthly figure came from."""

    TRANSACTIONS = "transactions"
    FALLBACK = "fallback"
    MANUAL = "manual"

    @property
    def is_real(self) -> bool:
        return self is not Provenance.FALLBACK


@dataclass(frozen=True)
class City:
    """City domain entity."""

    id: int
    name: str
    status: CityStatus
    population: int = 0
    population_15_to_44: int = 0
    implementation_start_date: Optional[datetime] = None
    mesoregion: Optional[str] = None
    gentilic: Optional[str] = None
    mayor: Optional[str] = None


@dataclass(frozen=True)
class Phase:
    """A named rollout phase with its ordered tasks."""

    name: str
    tasks: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Phase":
        """Build a phase from a JSON-style dict.

        Tasks may be given as plain strings under ``tasks`` or as action
        objects with a ``description`` under ``actions``.
        """
        if "name" not in data or not str(data["name"]).strip():
            raise ValueError("Phase name is required")
        raw_tasks = data.get("tasks")
        if raw_tasks is None:
            raw_tasks = data.get("actions", [])
        tasks = []
        for task in raw_tasks:
            if isinstance(task, dict):
                tasks.append(str(task.get("description", "")))
            else:
                tasks.append(str(task))
        return cls(name=str(data["name"]), tasks=tuple(tasks))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "tasks": list(self.tasks)}


@dataclass(frozen=True)
class PlanDetails:
    """Per-city phase plan."""

    city_id: int
    phases: tuple[Phase, ...]
    start_date: str
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class MonthEntry:
    """A monthly amount tagged with its provenance."""

    amount: Decimal
    provenance: Provenance = Provenance.MANUAL


@dataclass(frozen=True)
class PlanningResults:
    """Per-city monthly projected and realized figures.

    Both maps are keyed by month ("YYYY-MM") and kept in key order.
    """

    city_id: int
    projected: dict[str, MonthEntry] = field(default_factory=dict)
    realized: dict[str, MonthEntry] = field(default_factory=dict)
    start_date: Optional[str] = None

    def months(self) -> set[str]:
        """All month keys present in either map."""
        return set(self.projected) | set(self.realized)

    def month_count(self) -> int:
        """Number of (map, month) entries stored."""
        return len(self.projected) + len(self.realized)

    def has_real_realized(self) -> bool:
        """True when at least one realized month did not come from a fallback."""
        return any(entry.provenance.is_real for entry in self.realized.values())


@dataclass(frozen=True)
class Transaction:
    """Transaction feed row (read-only to this package)."""

    id: int
    city: str
    type: TransactionType
    description: str
    amount: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class TransactionQuery:
    """Filter for the transaction feed; the time range is half-open [start, end)."""

    city: str
    type: TransactionType
    description_pattern: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class TransactionSummary:
    """Count and sum of the rows matching a TransactionQuery."""

    count: int
    total: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    """Resolved revenue figure for one city and month."""

    city_id: int
    city_name: str
    month: str
    amount: Decimal
    provenance: Provenance
    transaction_count: int = 0
    persisted: bool = False


@dataclass(frozen=True)
class UnitFailure:
    """A failed unit (one city, optionally one month) inside a batch."""

    key: str
    reason: str
    error_type: str
    month: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "error": self.error_type, "reason": self.reason}
        if self.month is not None:
            data["month"] = self.month
        return data


@dataclass
class BatchReport:
    """Fan-in report for a batch operation.

    ``changed`` counts records actually modified, ``unmatched`` lists inputs
    that matched no record, ``failures`` lists units that raised.
    """

    requested: int = 0
    changed: int = 0
    successes: list[Any] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def matched(self) -> int:
        return self.requested - len(self.unmatched)

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure if any unit failed."""
        if self.failures:
            from rollout.domain.errors import PartialBatchFailure

            raise PartialBatchFailure(self)


@dataclass(frozen=True)
class GateDecision:
    """Outcome of a lifecycle gate check."""

    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True)
class AggregateResult:
    """Revenue for a set of cities in one month."""

    month: str
    total: Decimal
    results: tuple[ReconciliationResult, ...]
    failures: tuple[UnitFailure, ...] = ()


@dataclass(frozen=True)
class RevenueEnvelope:
    """Month-keyed revenue with a success/failure envelope."""

    data: dict[str, Decimal]
    failures: tuple[UnitFailure, ...] = ()

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "data": {month: float(amount) for month, amount in sorted(self.data.items())},
        }
        if self.failures:
            payload["errors"] = [failure.to_dict() for failure in self.failures]
        return payload
