"""Lifecycle gate: decides whether a city may move to a status."""

from typing import TYPE_CHECKING

from rollout.domain.entities import CityStatus, GateDecision
from rollout.domain.errors import NotFoundError, city_not_found

if TYPE_CHECKING:
    from rollout.database.base import Database


class LifecycleGate:
    """Read-only policy check combined by callers with CityRegistry.advance."""

    def __init__(self, db: "Database"):
        self.db = db

    def can_advance(self, city_id: int, target: CityStatus) -> GateDecision:
        """Check whether a city may advance to target.

        EXPANSION needs a plan with at least one phase. CONSOLIDATED also
        needs at least one realized month that did not come from a fallback
        estimate. A city already at or past target is allowed (advancing is
        then a no-op).

        Raises:
            NotFoundError: If the city does not exist
        """
        city = self.db.get_city(city_id)
        if city is None:
            raise NotFoundError(city_not_found(city_id))

        if target.rank <= city.status.rank:
            return GateDecision(allowed=True)

        if city.status.next() != target:
            return GateDecision(
                allowed=False,
                reason=f"{city.name} is {city.status.value}; it must reach "
                f"{city.status.next().value} before {target.value}",
            )

        plan = self.db.get_plan(city_id)
        if plan is None or not plan.phases:
            return GateDecision(
                allowed=False, reason=f"{city.name} has no plan phases"
            )

        if target == CityStatus.CONSOLIDATED:
            results = self.db.get_planning_results(city_id)
            if results is None or not results.has_real_realized():
                return GateDecision(
                    allowed=False,
                    reason=f"{city.name} has no realized month backed by real data",
                )

        return GateDecision(allowed=True)
