"""Revenue reconciliation domain service.

Realized monthly revenue is the sum of top-up credits in the transaction feed.
A city/month with no matching rows has no realized figure at all (not zero);
its revenue is then taken from the fallback table, or from the projection
curve when the table has no entry for the city.
"""

import csv
import time
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Mapping, Optional, Sequence

from rollout.domain.city import CityRegistry, Clock, _utc_now
from rollout.domain.entities import (
    AggregateResult,
    BatchReport,
    City,
    Provenance,
    ReconciliationResult,
    RevenueEnvelope,
    TransactionQuery,
    TransactionSummary,
    TransactionType,
    UnitFailure,
)
from rollout.domain.errors import NotFoundError, ValidationError, no_fallback
from rollout.domain.planning import PlanningLedger
from rollout.logging_config import get_logger
from rollout.utils.amount_parser import parse_amount
from rollout.utils.batch import fan_out
from rollout.utils.month import current_month, month_key, month_window, months_between, validate_month
from rollout.utils.retry import call_with_retry

if TYPE_CHECKING:
    from rollout.database.base import Database, TransactionFeed

logger = get_logger("domain.reconciliation")

DEFAULT_TOPUP_PATTERN = "recarga"

_ONE_DECIMAL = Decimal("0.1")


def format_thousands(amount: Decimal | int | float) -> str:
    """Display convention for revenue: thousands, one decimal, "k" suffix.

    >>> format_thousands(2595)
    '2.6k'
    """
    value = (Decimal(str(amount)) / 1000).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return f"{value}k"


class FallbackTable:
    """Static default monthly revenue per city name."""

    def __init__(self, estimates: Optional[Mapping[str, Decimal | int | float | str]] = None):
        self._estimates = {
            name: value if isinstance(value, Decimal) else Decimal(str(value))
            for name, value in (estimates or {}).items()
        }

    @classmethod
    def from_csv(cls, path: str | Path) -> "FallbackTable":
        """Load a two-column CSV (city, amount); a header row is optional.

        Amounts may use Brazilian formatting ("R$ 1.529,00").

        Raises:
            ValidationError: If a row has no name or an unparseable amount
        """
        estimates: dict[str, Decimal] = {}
        with open(path, newline="", encoding="utf-8") as f:
            for line_number, row in enumerate(csv.reader(f), start=1):
                if not row or not any(cell.strip() for cell in row):
                    continue
                if len(row) < 2 or not row[0].strip():
                    raise ValidationError(f"{path}:{line_number}: expected 'city,amount'")
                name, raw_amount = row[0].strip(), row[1]
                try:
                    estimates[name] = parse_amount(raw_amount)
                except ValueError as e:
                    if line_number == 1:
                        # Header row
                        continue
                    raise ValidationError(f"{path}:{line_number}: {e}")
        return cls(estimates)

    def get(self, city_name: str) -> Optional[Decimal]:
        """Estimate for a city, or None."""
        return self._estimates.get(city_name)

    def __contains__(self, city_name: str) -> bool:
        return city_name in self._estimates

    def __len__(self) -> int:
        return len(self._estimates)


class RevenueProjection:
    """Gradual ramp-up revenue projection for a city.

    The monthly ride goal is population_15_to_44 * target_penetration, scaled
    by a ramp-up factor over the first months after implementation starts and
    held at the full goal afterwards. Months before the start project zero.
    """

    CURVE_FACTORS = (
        Decimal("0.045"),
        Decimal("0.09"),
        Decimal("0.18"),
        Decimal("0.36"),
        Decimal("0.63"),
        Decimal("1.0"),
    )

    def __init__(
        self,
        target_penetration: Decimal = Decimal("0.10"),
        revenue_per_ride: Decimal = Decimal("2.50"),
        clock: Clock = _utc_now,
    ):
        self.target_penetration = target_penetration
        self.revenue_per_ride = revenue_per_ride
        self.clock = clock

    def monthly_goal(self, city: City, month: str) -> int:
        """Ride goal for the month; a city with no start date starts this month."""
        if city.implementation_start_date is not None:
            start = month_key(city.implementation_start_date)
        else:
            start = current_month(self.clock())
        elapsed = months_between(start, month)
        if elapsed < 0:
            return 0
        factor = self.CURVE_FACTORS[min(elapsed, len(self.CURVE_FACTORS) - 1)]
        goal = Decimal(city.population_15_to_44) * self.target_penetration * factor
        return int(goal.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def monthly_revenue(self, city: City, month: str) -> Decimal:
        """Projected revenue for the month."""
        return Decimal(self.monthly_goal(city, month)) * self.revenue_per_ride


class RevenueReconciler:
    """Service that resolves and records monthly revenue per city."""

    def __init__(
        self,
        db: "Database",
        feed: "TransactionFeed",
        fallback: Optional[FallbackTable] = None,
        projection: Optional[RevenueProjection] = None,
        topup_pattern: str = DEFAULT_TOPUP_PATTERN,
        retries: int = 1,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = 1,
    ):
        """Initialize revenue reconciler.

        Args:
            db: Database instance
            feed: Transaction feed to aggregate
            fallback: Static per-city estimates used when the feed has no rows
            projection: Projection curve used when the fallback table has no entry
            topup_pattern: Description substring identifying top-up credits
            retries: Retries after a timed-out feed or store call
            backoff_seconds: Delay before the first retry
            sleep: Sleep function (injectable for tests)
            max_workers: Threads used for multi-city operations
        """
        self.db = db
        self.feed = feed
        self.registry = CityRegistry(db)
        self.ledger = PlanningLedger(db)
        self.fallback = fallback or FallbackTable()
        self.projection = projection
        self.topup_pattern = topup_pattern
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self.max_workers = max_workers

    def _retrying(self, fn: Callable, operation: str):
        return call_with_retry(
            fn,
            retries=self.retries,
            backoff_seconds=self.backoff_seconds,
            sleep=self.sleep,
            operation=operation,
        )

    def build_query(self, city: City, month: str) -> TransactionQuery:
        """Feed query for a city's top-up credits in the month window."""
        start, end = month_window(month)
        return TransactionQuery(
            city=city.name,
            type=TransactionType.CREDIT,
            description_pattern=self.topup_pattern,
            start=start,
            end=end,
        )

    def realized_revenue(self, city: City, month: str) -> Optional[TransactionSummary]:
        """Sum of matching credits, or None when no row matched.

        A timed-out feed raises UpstreamTimeoutError after the retry; it is
        never read as "no rows".
        """
        query = self.build_query(city, validate_month(month))
        summary = self._retrying(lambda: self.feed.summarize(query), "transaction feed query")
        if summary.count == 0:
            return None
        return summary

    def fallback_revenue(self, city: City, month: str) -> Decimal:
        """Fallback estimate: table entry first, then the projection curve.

        Raises:
            NotFoundError: If neither source has a figure for the city
        """
        estimate = self.fallback.get(city.name)
        if estimate is not None:
            return estimate
        if self.projection is not None:
            return self.projection.monthly_revenue(city, month)
        raise NotFoundError(no_fallback(city.name, month))

    def resolve(self, city_id: int, month: str) -> ReconciliationResult:
        """Resolve a city's revenue for the month without writing it."""
        month = validate_month(month)
        city = self._retrying(lambda: self.registry.require_city(city_id), "city lookup")
        summary = self.realized_revenue(city, month)
        if summary is not None:
            return ReconciliationResult(
                city_id=city.id,
                city_name=city.name,
                month=month,
                amount=summary.total,
                provenance=Provenance.TRANSACTIONS,
                transaction_count=summary.count,
            )

        amount = self.fallback_revenue(city, month)
        logger.warning(
            "revenue_fallback_used",
            extra={"city_id": city.id, "city": city.name, "month": month, "amount": amount},
        )
        return ReconciliationResult(
            city_id=city.id,
            city_name=city.name,
            month=month,
            amount=amount,
            provenance=Provenance.FALLBACK,
        )

    def reconcile(self, city_id: int, month: str) -> ReconciliationResult:
        """Resolve a city's revenue for the month and record it as realized.

        The stored entry carries the provenance. A fallback figure does not
        overwrite a month already realized from real data; the result then
        reports the kept entry with persisted False.
        """
        result = self.resolve(city_id, month)
        results = self._retrying(
            lambda: self.ledger.record_month(
                result.city_id, result.month, realized=result.amount, provenance=result.provenance
            ),
            "record month",
        )
        stored = results.realized[result.month]
        persisted = stored.amount == result.amount and stored.provenance == result.provenance
        logger.info(
            "revenue_reconciled" if persisted else "revenue_kept",
            extra={
                "city_id": result.city_id,
                "month": result.month,
                "amount": stored.amount,
                "provenance": stored.provenance.value,
            },
        )
        return ReconciliationResult(
            city_id=result.city_id,
            city_name=result.city_name,
            month=result.month,
            amount=stored.amount,
            provenance=stored.provenance,
            transaction_count=result.transaction_count if persisted else 0,
            persisted=persisted,
        )

    def _failure(self, city_id: int, month: str, error: Exception) -> UnitFailure:
        logger.error(
            "reconciliation_failed",
            extra={"city_id": city_id, "month": month, "error_type": type(error).__name__, "error": str(error)},
        )
        return UnitFailure(
            key=str(city_id), month=month, reason=str(error), error_type=type(error).__name__
        )

    def reconcile_many(self, city_ids: Sequence[int], month: str) -> BatchReport:
        """Reconcile several cities for one month; failures are per city."""
        month = validate_month(month)
        city_ids = list(dict.fromkeys(city_ids))
        report = BatchReport(requested=len(city_ids))
        for city_id, result, error in fan_out(
            city_ids, lambda cid: self.reconcile(cid, month), self.max_workers
        ):
            if error is not None:
                report.failures.append(self._failure(city_id, month, error))
            else:
                report.successes.append(result)
                if result.persisted:
                    report.changed += 1
        return report

    def aggregate(self, city_ids: Sequence[int], month: str, persist: bool = False) -> AggregateResult:
        """Total revenue for a set of cities in one month.

        Each city contributes exactly one figure: realized when the feed has
        rows, otherwise its fallback. Failed cities are listed and left out of
        the total.

        Args:
            city_ids: Cities to include
            month: Month key
            persist: If True, record each city's figure like reconcile does
        """
        month = validate_month(month)
        city_ids = list(dict.fromkeys(city_ids))
        resolve = self.reconcile if persist else self.resolve

        results: list[ReconciliationResult] = []
        failures: list[UnitFailure] = []
        for city_id, result, error in fan_out(
            city_ids, lambda cid: resolve(cid, month), self.max_workers
        ):
            if error is not None:
                failures.append(self._failure(city_id, month, error))
            else:
                results.append(result)

        total = sum((r.amount for r in results), Decimal("0"))
        return AggregateResult(month=month, total=total, results=tuple(results), failures=tuple(failures))

    def revenue_series(self, city_ids: Iterable[int], months: Iterable[str]) -> RevenueEnvelope:
        """Month-keyed revenue for a city or a city set, with failures listed.

        Each month's amount is the aggregate over the cities that resolved.
        """
        city_ids = list(city_ids)
        data: dict[str, Decimal] = {}
        failures: list[UnitFailure] = []
        for month in months:
            aggregate = self.aggregate(city_ids, month)
            data[aggregate.month] = aggregate.total
            failures.extend(aggregate.failures)
        return RevenueEnvelope(data=data, failures=tuple(failures))
