"""Domain layer for rollout application."""

# Services are imported lazily: the storage layer imports rollout.domain.entities
# and the services import the storage interfaces.
_SERVICES = {
    "CityRegistry": "rollout.domain.city",
    "PlanningLedger": "rollout.domain.planning",
    "RevenueReconciler": "rollout.domain.reconciliation",
    "FallbackTable": "rollout.domain.reconciliation",
    "RevenueProjection": "rollout.domain.reconciliation",
    "LifecycleGate": "rollout.domain.lifecycle",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
