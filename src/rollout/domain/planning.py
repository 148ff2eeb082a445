"""Planning ledger domain service.

Plan details are replaced whole. Planning results are merge-written: a write
for one month touches only that month's keys and keeps every other month in
both the projected and the realized map.
"""

from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Mapping, Optional

from rollout.domain.entities import (
    BatchReport,
    MonthEntry,
    Phase,
    PlanDetails,
    PlanningResults,
    Provenance,
    UnitFailure,
)
from rollout.domain.errors import NotFoundError, ValidationError, city_not_found
from rollout.logging_config import get_logger
from rollout.utils.batch import fan_out
from rollout.utils.month import validate_month

if TYPE_CHECKING:
    from rollout.database.base import Database

logger = get_logger("domain.planning")


def _as_decimal(value: Decimal | int | float | str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid amount '{value}': {e}")


def merge_month(
    results: PlanningResults,
    month: str,
    projected: Optional[Decimal] = None,
    realized: Optional[Decimal] = None,
    provenance: Provenance = Provenance.MANUAL,
) -> PlanningResults:
    """Return results with month set in the map(s) given a value.

    A fallback value never replaces a realized entry that came from real
    data; the existing entry is kept.
    """
    projected_map = dict(results.projected)
    realized_map = dict(results.realized)

    if projected is not None:
        projected_map[month] = MonthEntry(amount=projected, provenance=provenance)

    if realized is not None:
        existing = realized_map.get(month)
        if existing is not None and existing.provenance.is_real and not provenance.is_real:
            logger.warning(
                "realized_fallback_ignored",
                extra={
                    "city_id": results.city_id,
                    "month": month,
                    "kept_provenance": existing.provenance.value,
                },
            )
        else:
            realized_map[month] = MonthEntry(amount=realized, provenance=provenance)

    return replace(
        results,
        projected=dict(sorted(projected_map.items())),
        realized=dict(sorted(realized_map.items())),
    )


class PlanningLedger:
    """Service for per-city phase plans and monthly planning results."""

    def __init__(self, db: "Database", max_workers: int = 1):
        """Initialize planning ledger.

        Args:
            db: Database instance
            max_workers: Threads used by batch operations
        """
        self.db = db
        self.max_workers = max_workers

    def _require_city(self, city_id: int) -> None:
        if self.db.get_city(city_id) is None:
            raise NotFoundError(city_not_found(city_id))

    def upsert_plan(
        self, city_id: int, phases: Iterable[Phase | dict], start_date: str
    ) -> PlanDetails:
        """Create or replace the phase plan of a city.

        Args:
            city_id: City ID
            phases: Ordered phases, as Phase objects or JSON-style dicts
            start_date: Plan start month ("YYYY-MM")

        Returns:
            Stored plan details

        Raises:
            NotFoundError: If the city does not exist
            ValidationError: If a phase or the start date is invalid
        """
        self._require_city(city_id)
        start_date = validate_month(start_date)
        try:
            parsed = [p if isinstance(p, Phase) else Phase.from_dict(p) for p in phases]
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid phases: {e}")

        plan = self.db.upsert_plan(city_id, parsed, start_date)
        logger.info("plan_saved", extra={"city_id": city_id, "phases": len(parsed)})
        return plan

    def get_plan(self, city_id: int) -> Optional[PlanDetails]:
        """Get plan details, or None if the city has no plan."""
        return self.db.get_plan(city_id)

    def record_month(
        self,
        city_id: int,
        month: str,
        projected: Optional[Decimal | int | float | str] = None,
        realized: Optional[Decimal | int | float | str] = None,
        provenance: Provenance = Provenance.MANUAL,
    ) -> PlanningResults:
        """Merge one month's figures into a city's planning results.

        Runs as one atomic read-modify-write for the city. Only the maps that
        receive a value are touched, and only at month.

        Returns:
            Planning results after the write

        Raises:
            NotFoundError: If the city does not exist
            ValidationError: If the month is malformed or no value is given
        """
        month = validate_month(month)
        if projected is None and realized is None:
            raise ValidationError("Nothing to record: give a projected or a realized amount")
        self._require_city(city_id)

        projected_amount = None if projected is None else _as_decimal(projected)
        realized_amount = None if realized is None else _as_decimal(realized)

        results = self.db.modify_planning_results(
            city_id,
            lambda current: merge_month(current, month, projected_amount, realized_amount, provenance),
        )
        logger.info(
            "month_recorded",
            extra={
                "city_id": city_id,
                "month": month,
                "projected": projected_amount,
                "realized": realized_amount,
                "provenance": provenance.value,
            },
        )
        return results

    def get_month(
        self, city_id: int, month: str
    ) -> tuple[Optional[MonthEntry], Optional[MonthEntry]]:
        """Return (projected, realized) for a month; either may be None."""
        month = validate_month(month)
        results = self.db.get_planning_results(city_id)
        if results is None:
            return None, None
        return results.projected.get(month), results.realized.get(month)

    def get_results(self, city_id: int) -> Optional[PlanningResults]:
        """Get a city's planning results, or None."""
        return self.db.get_planning_results(city_id)

    def set_results_start_date(self, city_id: int, start_date: str) -> PlanningResults:
        """Set the planning results start month, keeping every stored month."""
        start_date = validate_month(start_date)
        self._require_city(city_id)
        return self.db.modify_planning_results(
            city_id, lambda current: replace(current, start_date=start_date)
        )

    def sync_months(
        self,
        plans: Mapping[int, Mapping[str, Decimal | int | float | str]],
        provenance: Provenance = Provenance.MANUAL,
    ) -> BatchReport:
        """Merge projected month maps for many cities.

        Each city is merged independently; a failing city is reported and the
        others still land.

        Args:
            plans: city ID -> {month: projected amount}
            provenance: Provenance recorded on every written entry
        """
        report = BatchReport(requested=len(plans))

        def sync(city_id: int) -> PlanningResults:
            months = {validate_month(m): _as_decimal(v) for m, v in plans[city_id].items()}
            self._require_city(city_id)

            def apply(current: PlanningResults) -> PlanningResults:
                for month, amount in months.items():
                    current = merge_month(current, month, projected=amount, provenance=provenance)
                return current

            return self.db.modify_planning_results(city_id, apply)

        for city_id, _, error in fan_out(list(plans), sync, self.max_workers):
            if error is None:
                report.successes.append(city_id)
                report.changed += 1
            else:
                logger.error(
                    "sync_months_failed", extra={"city_id": city_id, "error": str(error)}
                )
                report.failures.append(
                    UnitFailure(key=str(city_id), reason=str(error), error_type=type(error).__name__)
                )
        return report
