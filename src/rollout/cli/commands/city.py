"""City lookup and status commands."""

import click
from rollout.cli.city_resolution import resolve_city_or_exit
from rollout.cli.error_handling import echo_failures, handle_domain_error
from rollout.domain.city import CityRegistry
from rollout.domain.entities import CityStatus
from rollout.domain.lifecycle import LifecycleGate

STATUS_CHOICE = click.Choice([s.value for s in CityStatus], case_sensitive=False)


def _format_city_line(city) -> str:
    return (
        f"ID: {city.id:7d} | {city.name:25s} | {city.status.value:12s} | "
        f"Pop: {city.population:>9,}"
    )


def _mutating_registry(ctx) -> CityRegistry:
    settings = ctx.obj["settings"]
    return CityRegistry(
        ctx.obj["db"], retries=settings.retries, backoff_seconds=settings.retry_backoff
    )


@click.group()
def city_group():
    """Look up cities and move them through the rollout."""
    pass


@city_group.command("list")
@click.option("--status", type=STATUS_CHOICE, help="Only cities in this status")
@click.option("--min-population", type=int, help="Only cities with at least this population")
@click.pass_context
def list_cities(ctx, status: str | None, min_population: int | None):
    """List cities, largest population first."""
    registry = CityRegistry(ctx.obj["db"])

    cities = registry.list_cities(
        status=CityStatus(status.upper()) if status else None, min_population=min_population
    )
    if not cities:
        click.echo("No cities found.")
        return

    click.echo("\nCities:")
    click.echo("-" * 72)
    for city in cities:
        click.echo(_format_city_line(city))


@city_group.command("show")
@click.argument("city", metavar="CITY")
@click.pass_context
def show_city(ctx, city: str):
    """Show a city's details.

    CITY can be a city ID, a full name, or an unambiguous part of a name.
    """
    registry = CityRegistry(ctx.obj["db"])
    found = resolve_city_or_exit(ctx, registry, city)

    click.echo(f"City: {found.name} (ID: {found.id})")
    click.echo(f"Status: {found.status.value}")
    click.echo(f"Population: {found.population:,}")
    click.echo(f"Population 15-44: {found.population_15_to_44:,}")
    if found.implementation_start_date is not None:
        click.echo(f"Implementation start: {found.implementation_start_date.date().isoformat()}")
    if found.mesoregion:
        click.echo(f"Mesoregion: {found.mesoregion}")
    if found.mayor:
        click.echo(f"Mayor: {found.mayor}")


@city_group.command("find")
@click.argument("text")
@click.pass_context
def find_cities(ctx, text: str):
    """Find cities whose name contains TEXT (case-insensitive)."""
    registry = CityRegistry(ctx.obj["db"])
    try:
        cities = registry.search(text)
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not cities:
        click.echo(f"No cities matching '{text}'.")
        return
    for city in cities:
        click.echo(_format_city_line(city))


@city_group.command("advance")
@click.argument("city", metavar="CITY")
@click.argument("status", type=STATUS_CHOICE)
@click.option("--check", is_flag=True, help="Refuse unless the lifecycle gate allows the move")
@click.pass_context
def advance_city(ctx, city: str, status: str, check: bool):
    """Advance CITY to STATUS (one stage at a time).

    Examples:
        rollout city advance "Nova Bandeirantes" EXPANSION
        rollout city advance 5105903 CONSOLIDATED --check
    """
    db = ctx.obj["db"]
    registry = _mutating_registry(ctx)
    found = resolve_city_or_exit(ctx, registry, city)
    target = CityStatus(status.upper())

    if check:
        decision = LifecycleGate(db).can_advance(found.id, target)
        if not decision:
            click.echo(f"Error: {decision.reason}", err=True)
            ctx.exit(1)

    try:
        changed = registry.advance(found.id, target)
    except ValueError as e:
        handle_domain_error(ctx, e)

    if changed:
        click.echo(f"Advanced '{found.name}' to {target.value}")
    else:
        click.echo(f"'{found.name}' is already {found.status.value}; nothing to do")


@city_group.command("batch-advance")
@click.argument("status", type=STATUS_CHOICE)
@click.argument("names", nargs=-1, required=True, metavar="NAME...")
@click.pass_context
def batch_advance(ctx, status: str, names: tuple[str, ...]):
    """Advance every named city to STATUS.

    Names must match exactly. Names that match no city are listed so typos
    are visible.

    Examples:
        rollout city batch-advance CONSOLIDATED "Nova Bandeirantes" "Nova Monte Verde"
    """
    registry = _mutating_registry(ctx)
    report = registry.batch_advance(names, CityStatus(status.upper()))

    click.echo(f"Changed {report.changed} of {report.requested} cities")
    for name in report.unmatched:
        click.echo(f"  No city named '{name}'", err=True)
    echo_failures(report.failures)
    if not report.ok:
        ctx.exit(1)


@city_group.command("force-consolidate")
@click.argument("names", nargs=-1, required=True, metavar="NAME...")
@click.confirmation_option(prompt="Skip the lifecycle rules and mark these cities CONSOLIDATED?")
@click.pass_context
def force_consolidate(ctx, names: tuple[str, ...]):
    """Mark the named cities CONSOLIDATED, skipping intermediate stages."""
    registry = _mutating_registry(ctx)
    report = registry.force_consolidate(names)

    click.echo(f"Consolidated {report.changed} of {report.requested} cities")
    for name in report.unmatched:
        click.echo(f"  No city named '{name}'", err=True)
    echo_failures(report.failures)
    if not report.ok:
        ctx.exit(1)


@city_group.command("can-advance")
@click.argument("city", metavar="CITY")
@click.argument("status", type=STATUS_CHOICE)
@click.pass_context
def can_advance(ctx, city: str, status: str):
    """Check whether CITY may advance to STATUS, without changing it."""
    db = ctx.obj["db"]
    found = resolve_city_or_exit(ctx, CityRegistry(db), city)

    decision = LifecycleGate(db).can_advance(found.id, CityStatus(status.upper()))
    if decision:
        click.echo(f"Yes: '{found.name}' may advance to {status.upper()}")
    else:
        click.echo(f"No: {decision.reason}")
        ctx.exit(1)


def register_commands(cli):
    """Register city commands with main CLI."""
    cli.add_command(city_group, name="city")
