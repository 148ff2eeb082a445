"""Revenue reconciliation commands."""

import json

import click
from rollout.cli.city_resolution import resolve_city_or_exit
from rollout.cli.error_handling import echo_failures, handle_domain_error
from rollout.database.factories import create_transaction_feed
from rollout.domain.city import CityRegistry
from rollout.domain.reconciliation import (
    FallbackTable,
    RevenueProjection,
    RevenueReconciler,
    format_thousands,
)
from rollout.utils.month import iter_months, validate_month


def _build_reconciler(ctx, fallback_file: str | None) -> RevenueReconciler:
    db = ctx.obj["db"]
    settings = ctx.obj["settings"]

    fallback = None
    if fallback_file is not None:
        try:
            fallback = FallbackTable.from_csv(fallback_file)
        except (OSError, ValueError) as e:
            handle_domain_error(ctx, e)

    feed = create_transaction_feed(store_url=db.database_url, settings=settings)
    ctx.call_on_close(feed.disconnect)
    return RevenueReconciler(
        db,
        feed,
        fallback=fallback,
        projection=RevenueProjection(),
        topup_pattern=settings.topup_pattern,
        retries=settings.retries,
        backoff_seconds=settings.retry_backoff,
    )


def _resolve_city_ids(ctx, cities: tuple[str, ...]) -> list[int]:
    registry = CityRegistry(ctx.obj["db"])
    return [resolve_city_or_exit(ctx, registry, city).id for city in cities]


fallback_option = click.option(
    "--fallback-file",
    type=click.Path(exists=True, dir_okay=False),
    help="CSV of default monthly revenue per city (city,amount)",
)


@click.group()
def reconcile_group():
    """Reconcile monthly revenue from the transaction feed."""
    pass


@reconcile_group.command("run")
@click.argument("month")
@click.argument("cities", nargs=-1, metavar="[CITY...]")
@fallback_option
@click.pass_context
def run(ctx, month: str, cities: tuple[str, ...], fallback_file: str | None):
    """Reconcile MONTH and record realized revenue for each city.

    With no CITY arguments every city is reconciled. Cities without top-up
    transactions in the month get their fallback estimate, recorded as such.

    Examples:
        rollout reconcile run 2026-01
        rollout reconcile run 2026-01 "Nova Bandeirantes" --fallback-file fallback.csv
    """
    try:
        month = validate_month(month)
    except ValueError as e:
        handle_domain_error(ctx, e)

    if cities:
        city_ids = _resolve_city_ids(ctx, cities)
    else:
        city_ids = [city.id for city in CityRegistry(ctx.obj["db"]).list_cities()]

    reconciler = _build_reconciler(ctx, fallback_file)
    report = reconciler.reconcile_many(city_ids, month)

    for result in report.successes:
        click.echo(
            f"{result.city_name:25s} | {result.amount:>12.2f} | {result.provenance.value}"
        )
    click.echo(f"Reconciled {len(report.successes)} of {report.requested} cities for {month}")
    echo_failures(report.failures)
    if not report.ok:
        ctx.exit(1)


@reconcile_group.command("total")
@click.argument("month")
@click.argument("cities", nargs=-1, required=True, metavar="CITY...")
@fallback_option
@click.option("--persist", is_flag=True, help="Also record each city's figure")
@click.pass_context
def total(ctx, month: str, cities: tuple[str, ...], fallback_file: str | None, persist: bool):
    """Total revenue of the given cities for MONTH.

    Each city counts once: its realized revenue if the feed has top-ups for
    the month, otherwise its fallback estimate.

    Examples:
        rollout reconcile total 2026-01 "Nova Bandeirantes" "Nova Monte Verde"
    """
    city_ids = _resolve_city_ids(ctx, cities)
    reconciler = _build_reconciler(ctx, fallback_file)

    try:
        aggregate = reconciler.aggregate(city_ids, month, persist=persist)
    except ValueError as e:
        handle_domain_error(ctx, e)

    for result in aggregate.results:
        click.echo(
            f"{result.city_name:25s} | {result.amount:>12.2f} | {result.provenance.value}"
        )
    click.echo(f"Total {aggregate.month}: {aggregate.total:.2f} ({format_thousands(aggregate.total)})")
    echo_failures(aggregate.failures)
    if aggregate.failures:
        ctx.exit(1)


@reconcile_group.command("series")
@click.argument("cities", nargs=-1, required=True, metavar="CITY...")
@click.option("--from", "start", required=True, help="First month (YYYY-MM)")
@click.option("--to", "end", required=True, help="Last month (YYYY-MM)")
@fallback_option
@click.pass_context
def series(ctx, cities: tuple[str, ...], start: str, end: str, fallback_file: str | None):
    """Print month-keyed revenue for CITY... as a JSON envelope.

    Examples:
        rollout reconcile series "Nova Bandeirantes" --from 2026-01 --to 2026-06
    """
    try:
        months = list(iter_months(start, end))
    except ValueError as e:
        handle_domain_error(ctx, e)

    city_ids = _resolve_city_ids(ctx, cities)
    envelope = _build_reconciler(ctx, fallback_file).revenue_series(city_ids, months)
    click.echo(json.dumps(envelope.to_dict(), indent=2))
    if not envelope.success:
        ctx.exit(1)


def register_commands(cli):
    """Register reconcile commands with main CLI."""
    cli.add_command(reconcile_group, name="reconcile")
