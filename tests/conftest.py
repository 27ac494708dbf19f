"""Pytest configuration and fixtures for proxyfront tests."""

import pytest
from pathlib import Path

from proxyfront.host import ExecutionHost
from proxyfront.proxy import ProxyHandle
from proxyfront.runtime import build_host

ADMIN = "0x" + "a1" * 20
ALICE = "0x" + "a2" * 20
MALLORY = "0x" + "ee" * 20
NEW_ADMIN = "0x" + "b1" * 20


@pytest.fixture
def state_db_path(tmp_path: Path) -> Path:
    """Create a temporary path for the state database."""
    return tmp_path / "state.db"


@pytest.fixture
def host(state_db_path: Path) -> ExecutionHost:
    """Host with the proxy and built-in counters registered."""
    host = build_host(state_db_path)
    yield host
    host.state.close()


@pytest.fixture
def logic_a(host: ExecutionHost) -> str:
    """Deployed counter-v1 logic."""
    return host.deploy("counter-v1", sender=ADMIN)


@pytest.fixture
def logic_b(host: ExecutionHost) -> str:
    """Deployed counter-v2 logic."""
    return host.deploy("counter-v2", sender=ADMIN)


@pytest.fixture
def proxy(host: ExecutionHost, logic_a: str) -> ProxyHandle:
    """Proxy over counter-v1 administered by ADMIN, no setup call."""
    return ProxyHandle.deploy(host, logic_a, ADMIN, sender=ADMIN)
