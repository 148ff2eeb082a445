"""Mapper functions to convert between domain models and SQLAlchemy models.

Month maps are stored as JSON objects whose values carry the amount as a
decimal string plus its provenance, so full precision survives the round trip.
"""

from decimal import Decimal
from typing import Any, Optional

from rollout.domain import entities as domain
from rollout.database.models import (
    City as ORMCity,
    PlanDetails as ORMPlanDetails,
    PlanningResults as ORMPlanningResults,
)


def city_to_domain(orm_city: ORMCity) -> domain.City:
    """Convert SQLAlchemy City model to domain City entity."""
    return domain.City(
        id=orm_city.id,
        name=orm_city.name,
        status=domain.CityStatus(orm_city.status),
        population=orm_city.population or 0,
        population_15_to_44=orm_city.population_15_to_44 or 0,
        implementation_start_date=orm_city.implementation_start_date,
        mesoregion=orm_city.mesoregion,
        gentilic=orm_city.gentilic,
        mayor=orm_city.mayor,
    )


def apply_city_to_orm(city: domain.City, orm_city: ORMCity) -> None:
    """Copy the mutable fields of a domain City onto its ORM row."""
    orm_city.status = city.status.value
    orm_city.population = city.population
    orm_city.population_15_to_44 = city.population_15_to_44
    orm_city.implementation_start_date = city.implementation_start_date


def phases_to_json(phases: Any) -> list[dict[str, Any]]:
    """Convert domain phases to their JSON form."""
    return [phase.to_dict() for phase in phases]


def plan_to_domain(orm_plan: ORMPlanDetails) -> domain.PlanDetails:
    """Convert SQLAlchemy PlanDetails model to domain PlanDetails entity."""
    return domain.PlanDetails(
        city_id=orm_plan.city_id,
        phases=tuple(domain.Phase.from_dict(p) for p in (orm_plan.phases or [])),
        start_date=orm_plan.start_date,
        updated_at=orm_plan.updated_at,
    )


def month_map_to_json(entries: dict[str, domain.MonthEntry]) -> dict[str, dict[str, str]]:
    """Convert a month map to JSON, keys in month order."""
    return {
        month: {"amount": str(entry.amount), "provenance": entry.provenance.value}
        for month, entry in sorted(entries.items())
    }


def month_map_to_domain(data: Optional[dict[str, Any]]) -> dict[str, domain.MonthEntry]:
    """Convert a JSON month map to domain entries.

    Bare numbers (rows written before provenance existed) are read as manual
    entries.
    """
    entries: dict[str, domain.MonthEntry] = {}
    for month, value in sorted((data or {}).items()):
        if isinstance(value, dict):
            entries[month] = domain.MonthEntry(
                amount=Decimal(str(value.get("amount", "0"))),
                provenance=domain.Provenance(value.get("provenance", domain.Provenance.MANUAL.value)),
            )
        else:
            entries[month] = domain.MonthEntry(amount=Decimal(str(value)))
    return entries


def planning_results_to_domain(orm_results: ORMPlanningResults) -> domain.PlanningResults:
    """Convert SQLAlchemy PlanningResults model to domain PlanningResults entity."""
    return domain.PlanningResults(
        city_id=orm_results.city_id,
        projected=month_map_to_domain(orm_results.results),
        realized=month_map_to_domain(orm_results.real_monthly_costs),
        start_date=orm_results.start_date,
    )


def apply_planning_results_to_orm(
    results: domain.PlanningResults, orm_results: ORMPlanningResults
) -> None:
    """Write a domain PlanningResults onto its ORM row.

    Fresh dict objects are assigned so the JSON columns are flagged dirty.
    """
    orm_results.results = month_map_to_json(results.projected)
    orm_results.real_monthly_costs = month_map_to_json(results.realized)
    orm_results.start_date = results.start_date
