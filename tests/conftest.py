from __future__ import annotations

import os
import shutil
import subprocess
import time
import uuid
from collections.abc import AsyncIterator, Callable
from functools import lru_cache

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from taskapi.observability import reset_metrics
from tests.helpers.auth import TOKENS
from tests.helpers.store import InMemoryTaskStore


def _wait_until(timeout_s: float, pause_s: float, check: Callable[[], bool]) -> bool:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if check():
            return True
        time.sleep(pause_s)
    return False


def _redis_ping(url: str) -> bool:
    try:
        import redis

        return bool(redis.Redis.from_url(url).ping())
    except Exception:
        return False


@pytest.fixture(scope="session")
def docker_compose_file(pytestconfig: pytest.Config) -> str:
    return os.path.join(str(pytestconfig.rootpath), "docker-compose.yml")


@pytest.fixture(scope="session")
def docker_compose_project_name() -> str:
    """Use a dedicated project name so the test stack never collides with a dev stack."""
    return "taskapi_test"


@lru_cache(maxsize=1)
def _docker_available() -> bool:
    if os.environ.get("FORCE_DOCKER_TESTS") == "1":
        return True
    docker = shutil.which("docker")
    if not docker:
        return False
    try:
        proc = subprocess.run(
            [docker, "ps", "-q"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=3,
        )
        return proc.returncode == 0
    except Exception:
        return False


@pytest.fixture(scope="session")
def redis_url(request: pytest.FixtureRequest) -> str:
    """Provide a live Redis URL.

    Priority:
    1) REDIS_URL env if reachable
    2) localhost:6379 if reachable
    3) the compose `redis` service via pytest-docker, if Docker is available
    """
    env_url = os.getenv("REDIS_URL")
    if env_url and _wait_until(10.0, 0.2, lambda: _redis_ping(env_url)):
        return env_url

    local_url = "redis://localhost:6379/0"
    if _wait_until(1.0, 0.2, lambda: _redis_ping(local_url)):
        return local_url

    if _docker_available():
        # Resolved lazily so that runs without Docker never touch compose
        docker_services = request.getfixturevalue("docker_services")

        def _ping() -> bool:
            port = docker_services.port_for("redis", 6379)
            return _redis_ping(f"redis://localhost:{port}/0")

        docker_services.wait_until_responsive(timeout=60.0, pause=0.5, check=_ping)
        port = docker_services.port_for("redis", 6379)
        return f"redis://localhost:{port}/0"

    pytest.skip("Redis not available locally and Docker not available; skipping live Redis test")


@pytest.fixture()
def unique_prefix() -> str:
    return f"testtasks:{uuid.uuid4()}"


@pytest.fixture(autouse=True)
def _fresh_metrics() -> None:
    reset_metrics()


@pytest.fixture()
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest_asyncio.fixture()
async def client(store: InMemoryTaskStore) -> AsyncIterator[httpx.AsyncClient]:
    from taskapi.gateway.app import create_app
    from taskapi.identity import StaticTokenIdentityProvider

    app = create_app(store, StaticTokenIdentityProvider(TOKENS))
    async with httpx.AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c
