"""Abstract store and transaction feed interfaces."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

# Import entities directly to avoid circular import through domain/__init__.py
from rollout.domain.entities import (
    City,
    CityStatus,
    Phase,
    PlanDetails,
    PlanningResults,
    TransactionQuery,
    TransactionSummary,
)

CityUpdate = Callable[[City], City]
ResultsUpdate = Callable[[PlanningResults], PlanningResults]


class Database(ABC):
    """Abstract store for cities, plan details and planning results."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # City operations
    @abstractmethod
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
        """Create a city. Returns city ID.

        Raises:
            ConflictError: If the ID or the name is already taken
        """
        pass

    @abstractmethod
    def get_city(self, city_id: int) -> Optional[City]:
        """Get city by ID."""
        pass

    @abstractmethod
    def get_city_by_name(self, name: str) -> Optional[City]:
        """Get city by exact name."""
        pass

    @abstractmethod
    def search_cities(self, text: str) -> list[City]:
        """List cities whose name contains text (case-insensitive), ordered by name."""
        pass

    @abstractmethod
    def list_cities(
        self, status: Optional[CityStatus] = None, min_population: Optional[int] = None
    ) -> list[City]:
        """List cities with optional filters, largest population first."""
        pass

    @abstractmethod
    def list_cities_by_names(self, names: Iterable[str]) -> list[City]:
        """List cities whose name exactly matches one of names."""
        pass

    @abstractmethod
    def modify_city(self, city_id: int, apply: CityUpdate) -> tuple[City, City]:
        """Atomically read, transform and write back one city.

        apply receives the current city and returns the new one. No other
        modify_city call for the same city may interleave. If apply raises,
        nothing is written and the error propagates.

        Returns:
            (before, after) pair

        Raises:
            NotFoundError: If the city does not exist
        """
        pass

    # Plan details operations
    @abstractmethod
    def upsert_plan(self, city_id: int, phases: Sequence[Phase], start_date: str) -> PlanDetails:
        """Create or replace the whole plan for a city."""
        pass

    @abstractmethod
    def get_plan(self, city_id: int) -> Optional[PlanDetails]:
        """Get plan details for a city."""
        pass

    # Planning results operations
    @abstractmethod
    def get_planning_results(self, city_id: int) -> Optional[PlanningResults]:
        """Get planning results for a city."""
        pass

    @abstractmethod
    def modify_planning_results(self, city_id: int, apply: ResultsUpdate) -> PlanningResults:
        """Atomically read, transform and write back a city's planning results.

        When no row exists, apply receives an empty PlanningResults and the
        returned value is inserted. Same serialization guarantee as
        modify_city.

        Returns:
            The stored planning results
        """
        pass


class TransactionFeed(ABC):
    """Read-only transaction log used as the reconciliation source."""

    @abstractmethod
    def summarize(self, query: TransactionQuery) -> TransactionSummary:
        """Count and sum the rows matching query.

        Raises:
            UpstreamTimeoutError: If the feed exceeded its deadline
        """
        pass
