"""Database factory functions for creating store and feed instances."""

from pathlib import Path
from typing import Optional

from rollout.config import Settings
from rollout.database.sqlalchemy_db import SQLAlchemyDatabase, SQLAlchemyTransactionFeed


def resolve_database_url(
    database_url: Optional[str] = None,
    database_path: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Pick the store URL.

    Order: explicit URL, explicit path, ROLLOUT_DATABASE_URL, ROLLOUT_DB_PATH,
    then ~/.rollout/rollout.db.
    """
    settings = settings or Settings.from_env()
    if database_url:
        return database_url
    if database_path:
        return f"sqlite:///{database_path}"
    if settings.database_url:
        return settings.database_url
    if settings.database_path:
        return f"sqlite:///{settings.database_path}"

    # Default to ~/.rollout/rollout.db
    db_dir = Path.home() / ".rollout"
    db_dir.mkdir(exist_ok=True)
    return f"sqlite:///{db_dir / 'rollout.db'}"


def create_database(
    database_url: Optional[str] = None,
    database_path: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> SQLAlchemyDatabase:
    """Create the store configured by arguments, then environment.

    Args:
        database_url: SQLAlchemy URL; wins over everything else
        database_path: SQLite file path, used when no URL is given
        settings: Settings to use instead of reading the environment

    Returns:
        SQLAlchemyDatabase instance
    """
    settings = settings or Settings.from_env()
    url = resolve_database_url(database_url, database_path, settings)
    return SQLAlchemyDatabase(
        url, connect_timeout=settings.connect_timeout, query_timeout=settings.query_timeout
    )


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, the usual
            resolution applies (see resolve_database_url)

    Returns:
        SQLAlchemyDatabase instance
    """
    return create_database(database_path=database_path)


def create_transaction_feed(
    feed_url: Optional[str] = None,
    store_url: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> SQLAlchemyTransactionFeed:
    """Create the transaction feed.

    Uses feed_url, then ROLLOUT_FEED_URL, then the store URL (the feed table
    lives next to the rollout tables by default).
    """
    settings = settings or Settings.from_env()
    url = feed_url or settings.feed_url or store_url or resolve_database_url(settings=settings)
    return SQLAlchemyTransactionFeed(
        url, connect_timeout=settings.connect_timeout, query_timeout=settings.query_timeout
    )
