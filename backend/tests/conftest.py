"""Shared test fixtures for backend tests.

Provides isolated port pool, registry and manager instances wired to an
in-memory container driver, so tests never touch real Docker containers or
sandbox bridges.
"""

import asyncio
import itertools
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure the backend package root is on sys.path so that absolute imports
# like ``from sandbox.ports import ...`` resolve correctly when running
# pytest from the repository root.
_backend_root = str(Path(__file__).resolve().parent.parent)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from bridge import BridgeHealth  # noqa: E402
from sandbox.docker_driver import (  # noqa: E402
    ContainerNotFoundError,
    ContainerRuntimeError,
    ContainerSpec,
)
from sandbox.ports import PortAllocator  # noqa: E402
from sandbox.registry import SandboxRegistry  # noqa: E402
from sandbox_manager import BridgeSettings, SandboxManager  # noqa: E402

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeContainerDriver:
    """In-memory stand-in for DockerDriver.

    Containers are tracked as ``{container_id: status}``. Individual
    operations can be made to fail per container, and every call is
    recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.containers: dict[str, str] = {}
        self.specs: dict[str, ContainerSpec] = {}
        self.calls: list[tuple[str, str]] = []
        self.create_error: Exception | None = None
        self.fail_stop: set[str] = set()
        self.fail_remove: set[str] = set()
        self.hang_stop: set[str] = set()
        self.docker_available = True
        self._ids = itertools.count(1)

    async def create(self, spec: ContainerSpec) -> str:
        self.calls.append(("create", spec.name))
        await asyncio.sleep(0)
        if self.create_error is not None:
            raise self.create_error
        container_id = f"c{next(self._ids):011d}"
        self.containers[container_id] = "running"
        self.specs[container_id] = spec
        return container_id

    async def inspect(self, container_id: str) -> str:
        self.calls.append(("inspect", container_id))
        await asyncio.sleep(0)
        if container_id not in self.containers:
            raise ContainerNotFoundError("inspect", f"No such container: {container_id}")
        return self.containers[container_id]

    async def stop(self, container_id: str, timeout: int = 5) -> None:
        self.calls.append(("stop", container_id))
        if container_id in self.hang_stop:
            await asyncio.sleep(3600)
        await asyncio.sleep(0)
        if container_id in self.fail_stop:
            raise ContainerRuntimeError("stop", "simulated stop failure")
        if container_id not in self.containers:
            raise ContainerNotFoundError("stop", f"No such container: {container_id}")
        self.containers[container_id] = "exited"

    async def remove(self, container_id: str) -> bool:
        self.calls.append(("remove", container_id))
        await asyncio.sleep(0)
        if container_id in self.fail_remove:
            raise ContainerRuntimeError("remove", "simulated remove failure")
        return self.containers.pop(container_id, None) is not None

    def ping(self) -> bool:
        return self.docker_available

    def vanish(self, container_id: str) -> None:
        """Simulate a container removed behind the manager's back."""
        self.containers.pop(container_id, None)


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ports() -> PortAllocator:
    """A small pool: 6100-6103 with bridges at 7100-7103."""
    return PortAllocator(6100, 6104, bridge_offset=1000)


@pytest.fixture()
def registry() -> SandboxRegistry:
    return SandboxRegistry()


@pytest.fixture()
def fake_driver() -> FakeContainerDriver:
    return FakeContainerDriver()


@pytest.fixture()
def bridge_client() -> MagicMock:
    """Bridge client whose sandboxes are always up with a stable editor."""
    client = MagicMock()

    async def _health(url: str) -> BridgeHealth:
        return BridgeHealth(ready=True, zed_running=True, zed_window_id="4194307")

    client.health = MagicMock(side_effect=_health)
    return client


@pytest.fixture()
def manager(
    ports: PortAllocator,
    registry: SandboxRegistry,
    fake_driver: FakeContainerDriver,
    bridge_client: MagicMock,
    clock: FakeClock,
) -> SandboxManager:
    """A SandboxManager wired to the fake driver."""
    return SandboxManager(
        ports,
        registry,
        fake_driver,  # type: ignore[arg-type]
        bridge=BridgeSettings(poll_interval=0.01, max_wait=0.5, stability_window=0.03),
        bridge_client=bridge_client,
        public_host="sandbox.example.test",
        clock=clock,
    )
