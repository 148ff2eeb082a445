"""Shared domain error messages and error types."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rollout.domain.entities import BatchReport, CityStatus


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested city or ledger row does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class InvalidTransitionError(DomainError):
    """Status change is not reachable from the current status."""


class UpstreamTimeoutError(DomainError):
    """The transaction feed or the store exceeded its deadline."""


class PartialBatchFailure(DomainError):
    """Some members of a batch failed; the batch itself ran to completion."""

    def __init__(self, report: "BatchReport"):
        self.report = report
        super().__init__(
            f"{len(report.failures)} of {report.requested} batch unit"
            f"{'s' if report.requested != 1 else ''} failed"
        )


def city_not_found(city_id: int) -> str:
    """Return message for missing city by ID."""
    return f"City {city_id} not found"


def city_name_not_found(name: str) -> str:
    """Return message for missing city by name."""
    return f"City '{name}' not found"


def ambiguous_city_name(text: str, count: int) -> str:
    """Return message when a partial name matches several cities."""
    return f"'{text}' matches {count} cities; use the full name or the city ID"


def duplicate_city(city_id: int, name: str) -> str:
    """Return message for duplicate city ID or name."""
    return f"City with ID {city_id} or name '{name}' already exists"


def plan_not_found(city_id: int) -> str:
    """Return message for a city with no plan details."""
    return f"No plan details for city {city_id}"


def invalid_transition(current: "CityStatus", target: "CityStatus") -> str:
    """Return message for a status change that skips or reverses a stage."""
    return f"Cannot move from {current.value} to {target.value}"


def no_fallback(city_name: str, month: str) -> str:
    """Return message when a city has neither transactions nor a fallback."""
    return f"No transactions and no fallback estimate for '{city_name}' in {month}"


def upstream_timeout(operation: str, detail: str) -> str:
    """Return message for a timed-out store or feed call."""
    return f"Timed out during {operation}: {detail}"
