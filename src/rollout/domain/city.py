"""City registry domain service: city lookup and the rollout status state machine."""

import time
from dataclasses import replace
from datetime import datetime, UTC
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from rollout.domain.entities import BatchReport, City, CityStatus, UnitFailure
from rollout.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    ambiguous_city_name,
    city_name_not_found,
    city_not_found,
    invalid_transition,
)
from rollout.logging_config import get_logger
from rollout.utils.batch import fan_out
from rollout.utils.retry import call_with_retry

if TYPE_CHECKING:
    from rollout.database.base import Database

logger = get_logger("domain.city")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def transition(city: City, target: CityStatus, now: datetime) -> City:
    """Apply the status state machine to a city.

    Returns the city unchanged when it is already at or past target. Moving
    into EXPANSION or later stamps implementation_start_date if it is unset.

    Raises:
        InvalidTransitionError: If target skips a stage
    """
    if target.rank <= city.status.rank:
        return city
    if city.status.next() != target:
        raise InvalidTransitionError(invalid_transition(city.status, target))
    return _moved(city, target, now)


def _moved(city: City, target: CityStatus, now: datetime) -> City:
    start = city.implementation_start_date
    if start is None and target.rank >= CityStatus.EXPANSION.rank:
        start = now
    return replace(city, status=target, implementation_start_date=start)


class CityRegistry:
    """Service for looking up cities and moving them through the rollout."""

    def __init__(
        self,
        db: "Database",
        clock: Clock = _utc_now,
        max_workers: int = 1,
        retries: int = 1,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize city registry.

        Args:
            db: Database instance
            clock: Returns the current time; used for implementation start dates
            max_workers: Threads used by batch operations
            retries: Retries after a timed-out status update
            backoff_seconds: Delay before the first retry
            sleep: Sleep function (injectable for tests)
        """
        self.db = db
        self.clock = clock
        self.max_workers = max_workers
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def _modify_city(self, city_id: int, apply: Callable[[City], City]) -> tuple[City, City]:
        return call_with_retry(
            lambda: self.db.modify_city(city_id, apply),
            retries=self.retries,
            backoff_seconds=self.backoff_seconds,
            sleep=self.sleep,
            operation="city update",
        )

    def get_city(self, city_id: int) -> Optional[City]:
        """Get city by ID, or None."""
        return self.db.get_city(city_id)

    def require_city(self, city_id: int) -> City:
        """Get city by ID.

        Raises:
            NotFoundError: If the city does not exist
        """
        city = self.db.get_city(city_id)
        if city is None:
            raise NotFoundError(city_not_found(city_id))
        return city

    def find_by_name(self, name: str) -> Optional[City]:
        """Get city by exact name, or None."""
        return self.db.get_city_by_name(name)

    def search(self, text: str) -> list[City]:
        """Cities whose name contains text, case-insensitive."""
        if not text.strip():
            raise ValidationError("Search text must not be empty")
        return self.db.search_cities(text.strip())

    def list_cities(
        self, status: Optional[CityStatus] = None, min_population: Optional[int] = None
    ) -> list[City]:
        """List cities, largest population first."""
        return self.db.list_cities(status=status, min_population=min_population)

    def resolve(self, ref: str | int) -> City:
        """Resolve a city ID, exact name, or unambiguous partial name.

        Raises:
            NotFoundError: If nothing matches, or several cities match a partial name
        """
        if isinstance(ref, int):
            return self.require_city(ref)

        try:
            city_id = int(ref)
        except (ValueError, TypeError):
            pass
        else:
            return self.require_city(city_id)

        city = self.db.get_city_by_name(ref)
        if city is not None:
            return city

        matches = self.db.search_cities(ref) if ref.strip() else []
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise NotFoundError(ambiguous_city_name(ref, len(matches)))
        raise NotFoundError(city_name_not_found(ref))

    def advance(self, city_id: int, target: CityStatus) -> bool:
        """Move a city forward to target.

        Already at or past target is a no-op. Entering EXPANSION sets the
        implementation start date in the same atomic update when unset. A
        timed-out update is retried before the timeout is raised.

        Returns:
            True if the city was changed

        Raises:
            NotFoundError: If the city does not exist
            InvalidTransitionError: If target is not the next status
            UpstreamTimeoutError: If the store timed out on every attempt
        """
        now = self.clock()
        before, after = self._modify_city(city_id, lambda city: transition(city, target, now))
        changed = after != before
        if changed:
            logger.info(
                "city_status_advanced",
                extra={
                    "city_id": city_id,
                    "from_status": before.status.value,
                    "to_status": after.status.value,
                },
            )
        return changed

    def _run_batch(
        self, names: Iterable[str], apply: Callable[[City], bool], operation: str, target: CityStatus
    ) -> BatchReport:
        names = list(dict.fromkeys(names))
        cities = self.db.list_cities_by_names(names)
        found = {city.name for city in cities}
        report = BatchReport(
            requested=len(names), unmatched=[name for name in names if name not in found]
        )

        for city, changed, error in fan_out(cities, apply, self.max_workers):
            if error is not None:
                report.failures.append(
                    UnitFailure(key=city.name, reason=str(error), error_type=type(error).__name__)
                )
                continue
            report.successes.append(city.id)
            if changed:
                report.changed += 1

        if report.unmatched:
            logger.warning(
                f"{operation}_unmatched",
                extra={"target": target.value, "unmatched": report.unmatched},
            )
        logger.info(
            f"{operation}_done",
            extra={
                "target": target.value,
                "requested": report.requested,
                "changed": report.changed,
                "failed": len(report.failures),
            },
        )
        return report

    def batch_advance(self, names: Iterable[str], target: CityStatus) -> BatchReport:
        """Advance every city whose name matches one of names.

        Unmatched names and per-city failures are reported, never raised.
        Compare report.matched with the input size to spot typos.
        """
        return self._run_batch(
            names, lambda c: self.advance(c.id, target), "batch_advance", target
        )

    def _force(self, city: City, now: datetime) -> bool:
        before, after = self._modify_city(
            city.id,
            lambda c: c
            if c.status == CityStatus.CONSOLIDATED
            else _moved(c, CityStatus.CONSOLIDATED, now),
        )
        if after == before:
            return False
        logger.warning(
            "city_force_consolidated",
            extra={"city_id": city.id, "from_status": before.status.value},
        )
        return True

    def force_consolidate(self, names: Iterable[str]) -> BatchReport:
        """Administrative override: move matching cities straight to CONSOLIDATED.

        Skips the one-step rule but still never moves a city backwards, and
        still stamps a missing implementation start date. Each city is
        updated on its own; a failure is reported and the rest still run.

        Returns:
            BatchReport whose changed counts the cities actually moved
        """
        now = self.clock()
        return self._run_batch(
            names, lambda c: self._force(c, now), "force_consolidate", CityStatus.CONSOLIDATED
        )

    def update_demographics(
        self,
        city_id: int,
        population: Optional[int] = None,
        population_15_to_44: Optional[int] = None,
    ) -> City:
        """Refresh demographic fields.

        A field is only replaced by a positive value; zero or missing source
        data keeps the stored figure.

        Raises:
            NotFoundError: If the city does not exist
        """

        def apply(city: City) -> City:
            return replace(
                city,
                population=population if population and population > 0 else city.population,
                population_15_to_44=population_15_to_44
                if population_15_to_44 and population_15_to_44 > 0
                else city.population_15_to_44,
            )

        _, after = self._modify_city(city_id, apply)
        return after
