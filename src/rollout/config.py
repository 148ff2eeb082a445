"""Runtime settings resolved from the environment."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    try:
        return max(0.0, float(environ.get(key, default)))
    except ValueError:
        return default


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    try:
        return max(0, int(environ.get(key, default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Connection, timeout and reconciliation settings.

    database_url wins over database_path; when neither is set the factories
    fall back to ~/.rollout/rollout.db. feed_url defaults to the store.
    """

    database_url: Optional[str] = None
    database_path: Optional[str] = None
    feed_url: Optional[str] = None
    connect_timeout: float = 5.0
    query_timeout: float = 30.0
    retries: int = 1
    retry_backoff: float = 0.5
    topup_pattern: str = "recarga"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ROLLOUT_* environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("ROLLOUT_DATABASE_URL") or None,
            database_path=env.get("ROLLOUT_DB_PATH") or None,
            feed_url=env.get("ROLLOUT_FEED_URL") or None,
            connect_timeout=_float(env, "ROLLOUT_CONNECT_TIMEOUT", 5.0),
            query_timeout=_float(env, "ROLLOUT_QUERY_TIMEOUT", 30.0),
            retries=_int(env, "ROLLOUT_RETRIES", 1),
            retry_backoff=_float(env, "ROLLOUT_RETRY_BACKOFF", 0.5),
            topup_pattern=env.get("ROLLOUT_TOPUP_PATTERN") or "recarga",
            log_level=(env.get("ROLLOUT_LOG_LEVEL") or "INFO").upper(),
        )
