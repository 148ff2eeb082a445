"""In-memory store and transaction feed.

Same contracts as the SQLAlchemy implementations, without a database. Used
by the test suite and handy for dry runs.
"""

import threading
from dataclasses import replace
from datetime import datetime, UTC
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from rollout.database.base import CityUpdate, Database, ResultsUpdate, TransactionFeed
from rollout.domain.entities import (
    City,
    CityStatus,
    Phase,
    PlanDetails,
    PlanningResults,
    Transaction,
    TransactionQuery,
    TransactionSummary,
    TransactionType,
)
from rollout.domain.errors import ConflictError, NotFoundError, city_not_found, duplicate_city
from rollout.utils.month import to_naive_utc


class InMemoryDatabase(Database):
    """Dictionary-backed implementation of Database interface."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}
        self._cities: dict[int, City] = {}
        self._plans: dict[int, PlanDetails] = {}
        self._results: dict[int, PlanningResults] = {}

    def _lock(self, city_id: int) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(city_id, threading.RLock())

    def connect(self) -> None:
        pass

    def disconnect(self) -> None:
        pass

    def initialize_schema(self) -> None:
        pass

    def create_city(
        self,
        city_id: int,
        name: str,
        status: CityStatus = CityStatus.PLANNING,
        population: int = 0,
        population_15_to_44: int = 0,
        implementation_start_date: Optional[datetime] = None,
        mesoregion: Optional[str] = None,
        gentilic: Optional[str] = None,
        mayor: Optional[str] = None,
    ) -> int:
        with self._guard:
            if city_id in self._cities or any(c.name == name for c in self._cities.values()):
                raise ConflictError(duplicate_city(city_id, name))
            self._cities[city_id] = City(
                id=city_id,
                name=name,
                status=status,
                population=population,
                population_15_to_44=population_15_to_44,
                implementation_start_date=implementation_start_date,
                mesoregion=mesoregion,
                gentilic=gentilic,
                mayor=mayor,
            )
        return city_id

    def get_city(self, city_id: int) -> Optional[City]:
        return self._cities.get(city_id)

    def get_city_by_name(self, name: str) -> Optional[City]:
        for city in self._cities.values():
            if city.name == name:
                return city
        return None

    def search_cities(self, text: str) -> list[City]:
        needle = text.lower()
        return sorted(
            (c for c in self._cities.values() if needle in c.name.lower()), key=lambda c: c.name
        )

    def list_cities(
        self, status: Optional[CityStatus] = None, min_population: Optional[int] = None
    ) -> list[City]:
        cities = [
            c
            for c in self._cities.values()
            if (status is None or c.status == status)
            and (min_population is None or c.population >= min_population)
        ]
        return sorted(cities, key=lambda c: (-c.population, c.name))

    def list_cities_by_names(self, names: Iterable[str]) -> list[City]:
        wanted = set(names)
        return sorted((c for c in self._cities.values() if c.name in wanted), key=lambda c: c.name)

    def modify_city(self, city_id: int, apply: CityUpdate) -> tuple[City, City]:
        with self._lock(city_id):
            before = self._cities.get(city_id)
            if before is None:
                raise NotFoundError(city_not_found(city_id))
            after = apply(before)
            self._cities[city_id] = after
            return before, after

    def upsert_plan(self, city_id: int, phases: Sequence[Phase], start_date: str) -> PlanDetails:
        with self._lock(city_id):
            plan = PlanDetails(
                city_id=city_id,
                phases=tuple(phases),
                start_date=start_date,
                updated_at=datetime.now(UTC),
            )
            self._plans[city_id] = plan
            return plan

    def get_plan(self, city_id: int) -> Optional[PlanDetails]:
        return self._plans.get(city_id)

    def get_planning_results(self, city_id: int) -> Optional[PlanningResults]:
        results = self._results.get(city_id)
        if results is None:
            return None
        # Callers get their own copies of the month maps
        return replace(results, projected=dict(results.projected), realized=dict(results.realized))

    def modify_planning_results(self, city_id: int, apply: ResultsUpdate) -> PlanningResults:
        with self._lock(city_id):
            current = self.get_planning_results(city_id) or PlanningResults(city_id=city_id)
            updated = apply(current)
            self._results[city_id] = replace(
                updated, projected=dict(updated.projected), realized=dict(updated.realized)
            )
            return updated


class InMemoryTransactionFeed(TransactionFeed):
    """List-backed transaction feed."""

    def __init__(self, transactions: Optional[Iterable[Transaction]] = None):
        self._transactions: list[Transaction] = list(transactions or [])

    def add(
        self,
        city: str,
        amount: Decimal | str | int,
        timestamp: datetime,
        description: str = "Recarga",
        type: TransactionType = TransactionType.CREDIT,
    ) -> Transaction:
        """Append a transaction and return it."""
        transaction = Transaction(
            id=len(self._transactions) + 1,
            city=city,
            type=type,
            description=description,
            amount=Decimal(str(amount)),
            timestamp=timestamp,
        )
        self._transactions.append(transaction)
        return transaction

    def summarize(self, query: TransactionQuery) -> TransactionSummary:
        city = query.city.lower()
        pattern = query.description_pattern.lower()
        start, end = to_naive_utc(query.start), to_naive_utc(query.end)
        matched = [
            t
            for t in self._transactions
            if t.city.lower() == city
            and t.type == query.type
            and pattern in t.description.lower()
            and start <= to_naive_utc(t.timestamp) < end
        ]
        return TransactionSummary(count=len(matched), total=sum((t.amount for t in matched), Decimal("0")))
