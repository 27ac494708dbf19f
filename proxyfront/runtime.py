"""Shared host construction and configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from proxyfront.host import ExecutionHost
from proxyfront.logic import BUILTIN_LOGIC
from proxyfront.proxy import PROXY_KIND, UpgradeableProxy
from proxyfront.state import StateStore

logger = logging.getLogger(__name__)

# Environment variable selecting the state database
DB_ENV_VAR = "PROXYFRONT_DB"


def resolve_db_path(db_path: Path | str | None = None) -> Path | str | None:
    """Pick the database path: explicit argument, then environment, then default."""
    if db_path is not None:
        return db_path
    return os.environ.get(DB_ENV_VAR) or None


def build_host(db_path: Path | str | None = None) -> ExecutionHost:
    """Create a host with the proxy and built-in logic kinds registered.

    Args:
        db_path: SQLite path or ":memory:"; falls back to PROXYFRONT_DB, then the default

    Returns:
        ExecutionHost ready to deploy and call
    """
    host = ExecutionHost(StateStore(resolve_db_path(db_path)))
    host.register(PROXY_KIND, UpgradeableProxy)
    for kind, factory in BUILTIN_LOGIC.items():
        host.register(kind, factory)
    logger.debug(f"Host ready on {host.state.db_path} with kinds {host.kinds}")
    return host


# Global host instance
_host_instance: ExecutionHost | None = None


def get_host(db_path: Path | str | None = None) -> ExecutionHost:
    """Get or create the global host instance."""
    global _host_instance
    if _host_instance is None:
        _host_instance = build_host(db_path)
    return _host_instance
