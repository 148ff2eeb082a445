"""CLI error handling helpers."""

import click

from rollout.domain.errors import DomainError


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def echo_failures(failures) -> None:
    """Print per-unit batch failures to stderr."""
    for failure in failures:
        where = f"{failure.key} {failure.month}" if failure.month else failure.key
        click.echo(f"  FAILED {where}: {failure.reason}", err=True)
