"""Main CLI entry point."""

import click
from rollout.config import Settings
from rollout.database.factories import create_database
from rollout.logging_config import configure_logging

# Import and register all commands at module level
from rollout.cli.commands import city, plan, reconcile


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to SQLite database file (overrides ROLLOUT_DB_PATH environment variable)",
    envvar="ROLLOUT_DB_PATH",
)
@click.option(
    "--database-url",
    help="SQLAlchemy database URL (overrides --db-path)",
    envvar="ROLLOUT_DATABASE_URL",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level for the JSON log stream on stderr (default: ROLLOUT_LOG_LEVEL or INFO)",
)
@click.pass_context
def cli(ctx, db_path: str | None, database_url: str | None, log_level: str | None):
    """Rollout - City rollout lifecycle and revenue reconciliation.

    Track cities through PLANNING, EXPANSION and CONSOLIDATED, keep their
    phase plans and monthly figures, and reconcile monthly revenue from the
    transaction feed.
    """
    ctx.ensure_object(dict)
    settings = Settings.from_env()
    ctx.obj["settings"] = settings

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        configure_logging(level=log_level or settings.log_level)
        db = create_database(database_url=database_url, database_path=db_path, settings=settings)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
city.register_commands(cli)
plan.register_commands(cli)
reconcile.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
