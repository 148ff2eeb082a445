"""Database layer for rollout application."""

from rollout.database.base import Database, TransactionFeed
from rollout.database.factories import create_database, create_sqlite_database, create_transaction_feed

__all__ = [
    "Database",
    "TransactionFeed",
    "create_database",
    "create_sqlite_database",
    "create_transaction_feed",
]
