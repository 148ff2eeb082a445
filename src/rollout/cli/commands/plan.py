"""Plan and monthly figures commands."""

import json

import click
from rollout.cli.city_resolution import resolve_city_or_exit
from rollout.cli.error_handling import handle_domain_error
from rollout.domain.city import CityRegistry
from rollout.domain.planning import PlanningLedger
from rollout.utils.amount_parser import parse_amount


def _entry_text(entry) -> str:
    if entry is None:
        return "-"
    return f"{entry.amount:.2f} ({entry.provenance.value})"


@click.group()
def plan_group():
    """Manage city phase plans and monthly figures."""
    pass


@plan_group.command("set")
@click.argument("city", metavar="CITY")
@click.option(
    "--phases-file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="JSON file with a list of phases ({\"name\": ..., \"tasks\": [...]})",
)
@click.option("--start-date", required=True, help="Plan start month (YYYY-MM)")
@click.pass_context
def set_plan(ctx, city: str, phases_file: str, start_date: str):
    """Create or replace the phase plan of CITY.

    Examples:
        rollout plan set "Nova Bandeirantes" --phases-file phases.json --start-date 2026-01
    """
    db = ctx.obj["db"]
    found = resolve_city_or_exit(ctx, CityRegistry(db), city)

    try:
        with open(phases_file, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        click.echo(f"Error: Cannot read {phases_file}: {e}", err=True)
        ctx.exit(1)
    phases = data.get("phases", []) if isinstance(data, dict) else data

    try:
        plan = PlanningLedger(db).upsert_plan(found.id, phases, start_date)
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Saved plan for '{found.name}' with {len(plan.phases)} phases starting {plan.start_date}")


@plan_group.command("show")
@click.argument("city", metavar="CITY")
@click.pass_context
def show_plan(ctx, city: str):
    """Show the phase plan and monthly figures of CITY."""
    db = ctx.obj["db"]
    found = resolve_city_or_exit(ctx, CityRegistry(db), city)
    ledger = PlanningLedger(db)

    plan = ledger.get_plan(found.id)
    if plan is None:
        click.echo(f"No plan for '{found.name}'.")
    else:
        click.echo(f"Plan for '{found.name}' (start {plan.start_date}):")
        for index, phase in enumerate(plan.phases, start=1):
            click.echo(f"  {index}. {phase.name}")
            for task in phase.tasks:
                click.echo(f"     - {task}")

    results = ledger.get_results(found.id)
    if results is None or not results.months():
        click.echo("No monthly figures.")
        return

    click.echo("\nMonth     | Projected                | Realized")
    click.echo("-" * 64)
    for month in sorted(results.months()):
        click.echo(
            f"{month}   | {_entry_text(results.projected.get(month)):24s} | "
            f"{_entry_text(results.realized.get(month))}"
        )


@plan_group.command("record")
@click.argument("city", metavar="CITY")
@click.argument("month")
@click.option("--projected", help="Projected amount for the month")
@click.option("--realized", help="Realized amount for the month")
@click.pass_context
def record_month(ctx, city: str, month: str, projected: str | None, realized: str | None):
    """Record MONTH's projected and/or realized figure for CITY.

    Other months are kept. Amounts accept "1234.56" or "R$ 1.234,56".

    Examples:
        rollout plan record "Nova Bandeirantes" 2026-01 --projected 961
        rollout plan record 5105903 2026-02 --realized "R$ 1.529,00"
    """
    db = ctx.obj["db"]
    found = resolve_city_or_exit(ctx, CityRegistry(db), city)

    try:
        results = PlanningLedger(db).record_month(
            found.id,
            month,
            projected=parse_amount(projected) if projected is not None else None,
            realized=parse_amount(realized) if realized is not None else None,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Recorded {month} for '{found.name}' ({len(results.months())} months stored)")


@plan_group.command("month")
@click.argument("city", metavar="CITY")
@click.argument("month")
@click.pass_context
def show_month(ctx, city: str, month: str):
    """Show CITY's projected and realized figures for MONTH."""
    db = ctx.obj["db"]
    found = resolve_city_or_exit(ctx, CityRegistry(db), city)

    try:
        projected, realized = PlanningLedger(db).get_month(found.id, month)
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"{found.name} {month}")
    click.echo(f"  Projected: {_entry_text(projected)}")
    click.echo(f"  Realized:  {_entry_text(realized)}")


def register_commands(cli):
    """Register plan commands with main CLI."""
    cli.add_command(plan_group, name="plan")
