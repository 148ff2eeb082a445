"""CLI helpers for city resolution."""

from __future__ import annotations

import click
from rollout.domain.city import CityRegistry
from rollout.domain.entities import City


def resolve_city_or_exit(ctx: click.Context, registry: CityRegistry, city: str | int) -> City:
    """Resolve city name or ID, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return registry.resolve(city)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)
